"""Domain services: intake, AI analysis, evidence, triage, rewards, and queries."""
