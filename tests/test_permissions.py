from types import SimpleNamespace

import pytest

from utils.permissions import PERMISSIONS, can


def _user(role, authenticated=True):
    return SimpleNamespace(role=role, is_authenticated=authenticated)


class TestPermissions:
    @pytest.mark.parametrize(
        "permission",
        ["complaint.update_status", "complaint.assign", "complaint.view_all", "reports.view"],
    )
    def test_staff_permissions(self, permission):
        assert can(_user("authority"), permission)
        assert can(_user("admin"), permission)
        assert not can(_user("citizen"), permission)

    @pytest.mark.parametrize("permission", ["complaint.delete", "category.manage", "user.manage_roles"])
    def test_admin_only_permissions(self, permission):
        assert can(_user("admin"), permission)
        assert not can(_user("authority"), permission)
        assert not can(_user("citizen"), permission)

    def test_anonymous_user_has_nothing(self):
        for permission in PERMISSIONS:
            assert not can(_user("admin", authenticated=False), permission)
            assert not can(None, permission)

    def test_unknown_role_has_nothing(self):
        assert not can(_user("superuser"), "complaint.delete")

    def test_unknown_permission_raises(self):
        with pytest.raises(KeyError):
            can(_user("admin"), "complaint.teleport")
