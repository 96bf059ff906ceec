"""
Tests for edit suggestion state rules.
"""

import pytest

from content_service.domain.entities import EditStatus
from content_service.domain.exceptions import InvalidTransition
from content_service.repositories import EditBmc


@pytest.fixture
async def pending_edit(create_author, create_post, create_edit):
    editor_id = await create_author(name="Editor")
    post_id = await create_post()
    return await create_edit(post_id=post_id, editor_id=editor_id)


class TestEditTransitions:
    """Test PENDING -> ACCEPTED/REJECTED and terminal states."""

    async def test_new_edit_is_pending(self, mm, root_ctx, pending_edit):
        edit = await EditBmc.get(root_ctx, mm, pending_edit)
        assert edit.status is EditStatus.PENDING

    async def test_client_cannot_create_accepted_edit(
        self, mm, root_ctx, create_author, create_post
    ):
        editor_id = await create_author(name="Sneaky")
        post_id = await create_post()
        edit_id = await EditBmc.create(
            root_ctx,
            mm,
            {"post_id": post_id, "editor_id": editor_id, "new_content": "x", "status": "ACCEPTED"},
        )
        assert (await EditBmc.get(root_ctx, mm, edit_id)).status is EditStatus.PENDING

    @pytest.mark.parametrize("target", [EditStatus.ACCEPTED, EditStatus.REJECTED])
    async def test_pending_moves_to_terminal(self, mm, root_ctx, pending_edit, target):
        await EditBmc.update(root_ctx, mm, pending_edit, {"status": target.value})
        assert (await EditBmc.get(root_ctx, mm, pending_edit)).status is target

    async def test_pending_content_can_change(self, mm, root_ctx, pending_edit):
        await EditBmc.update(root_ctx, mm, pending_edit, {"new_content": "Even better"})
        edit = await EditBmc.get(root_ctx, mm, pending_edit)

        assert edit.new_content == "Even better"
        assert edit.status is EditStatus.PENDING

    @pytest.mark.parametrize(
        "changes",
        [
            {"status": "PENDING"},
            {"status": "REJECTED"},
            {"new_content": "too late"},
        ],
    )
    async def test_accepted_is_final(self, mm, root_ctx, pending_edit, changes):
        await EditBmc.update(root_ctx, mm, pending_edit, {"status": "ACCEPTED"})

        with pytest.raises(InvalidTransition) as exc_info:
            await EditBmc.update(root_ctx, mm, pending_edit, changes)
        assert exc_info.value.id == pending_edit

        edit = await EditBmc.get(root_ctx, mm, pending_edit)
        assert edit.status is EditStatus.ACCEPTED
        assert edit.new_content == "Better body"

    async def test_rejected_is_final(self, mm, root_ctx, pending_edit):
        await EditBmc.update(root_ctx, mm, pending_edit, {"status": "REJECTED"})

        with pytest.raises(InvalidTransition):
            await EditBmc.update(root_ctx, mm, pending_edit, {"status": "ACCEPTED"})

    async def test_empty_update_on_terminal_edit_is_noop(self, mm, root_ctx, pending_edit):
        await EditBmc.update(root_ctx, mm, pending_edit, {"status": "ACCEPTED"})
        await EditBmc.update(root_ctx, mm, pending_edit, {})

    async def test_filter_by_post_and_status(
        self, mm, root_ctx, create_author, create_post, create_edit
    ):
        editor_id = await create_author(name="Editor")
        post_a = await create_post(title="a")
        post_b = await create_post(title="b")
        first = await create_edit(post_id=post_a, editor_id=editor_id)
        second = await create_edit(post_id=post_a, editor_id=editor_id)
        await create_edit(post_id=post_b, editor_id=editor_id)
        await EditBmc.update(root_ctx, mm, second, {"status": "REJECTED"})

        edits = await EditBmc.list(root_ctx, mm, {"post_id": post_a, "status": "PENDING"})
        assert [e.id for e in edits] == [first]
