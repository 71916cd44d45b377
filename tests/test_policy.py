import pytest

from auth import AuthenticatedContext
from errors import ForbiddenError
from models import Role
from policy import Action, authorize, is_allowed

SALES = AuthenticatedContext(user_id=1, email="sales@example.com", role=Role.sales)
MANAGER = AuthenticatedContext(user_id=2, email="manager@example.com", role=Role.manager)


@pytest.mark.parametrize("action", [
    Action.REPORT_UPDATE, Action.REPORT_DELETE, Action.COMMENT_UPDATE, Action.COMMENT_DELETE,
])
def test_owner_only_actions(action):
    assert is_allowed(SALES, action, SALES.user_id)
    assert not is_allowed(SALES, action, 99)
    # 上長でも他人のリソースは変更できない
    assert not is_allowed(MANAGER, action, SALES.user_id)
    assert not is_allowed(SALES, action, None)


def test_report_view():
    assert is_allowed(SALES, Action.REPORT_VIEW, SALES.user_id)
    assert not is_allowed(SALES, Action.REPORT_VIEW, 99)
    assert is_allowed(MANAGER, Action.REPORT_VIEW, 99)


def test_report_list_filter():
    assert is_allowed(SALES, Action.REPORT_LIST)
    assert is_allowed(SALES, Action.REPORT_LIST, SALES.user_id)
    assert not is_allowed(SALES, Action.REPORT_LIST, 99)
    assert is_allowed(MANAGER, Action.REPORT_LIST, 99)


def test_manager_only_actions():
    for action in (Action.COMMENT_CREATE, Action.USER_MANAGE):
        assert is_allowed(MANAGER, action)
        assert not is_allowed(SALES, action)


def test_anyone_authenticated():
    for ctx in (SALES, MANAGER):
        assert is_allowed(ctx, Action.REPORT_CREATE)
        assert is_allowed(ctx, Action.CUSTOMER_MANAGE)


def test_authorize_raises_with_message():
    with pytest.raises(ForbiddenError) as excinfo:
        authorize(SALES, Action.COMMENT_CREATE)
    assert excinfo.value.message == "コメントは上長のみ追加できます"
    assert excinfo.value.status_code == 403

    authorize(MANAGER, Action.COMMENT_CREATE)
