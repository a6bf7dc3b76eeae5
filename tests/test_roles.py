"""
Unit Tests for the Admin Gate
Tests for: password check, admin flag, handler decorator
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from roles import check_password, grant_admin, is_admin, require_admin, revoke_admin


def _context(user_data=None):
    return SimpleNamespace(user_data=user_data if user_data is not None else {})


def _update(callback=False):
    update = MagicMock()
    if callback:
        update.callback_query.answer = AsyncMock()
    else:
        update.callback_query = None
        update.effective_message.reply_text = AsyncMock()
    return update


class TestPassword:
    """Shared admin password"""

    def test_correct_password(self):
        assert check_password("test-admin-password")
        assert check_password("  test-admin-password\n")

    def test_wrong_password(self):
        assert not check_password("guess")
        assert not check_password("")


class TestRequireAdmin:
    """Admin-only handlers"""

    async def test_blocks_non_admin_message(self):
        handler = AsyncMock(return_value="ran")
        update, context = _update(), _context()

        result = await require_admin(handler)(update, context)

        assert result is None
        handler.assert_not_awaited()
        update.effective_message.reply_text.assert_awaited_once()

    async def test_blocks_non_admin_callback(self):
        handler = AsyncMock()
        update = _update(callback=True)

        await require_admin(handler)(update, _context())

        handler.assert_not_awaited()
        update.callback_query.answer.assert_awaited_once()

    async def test_runs_for_admin(self):
        handler = AsyncMock(return_value="ran")
        context = _context()
        grant_admin(context)

        assert is_admin(context)
        assert await require_admin(handler)(_update(), context) == "ran"

    def test_revoke(self):
        context = _context({"is_admin": True, "reg_draft": {}})
        revoke_admin(context)
        assert not is_admin(context)
        assert context.user_data == {"reg_draft": {}}
