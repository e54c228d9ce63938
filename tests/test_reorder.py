"""Tests for move planning and application."""
from uuid import uuid4

import pytest

from kanban_core import positions, reorder
from kanban_core.models import Issue, IssueStatus

from conftest import column_positions, column_titles, make_column

TODO = IssueStatus.TODO
IN_PROGRESS = IssueStatus.IN_PROGRESS
DONE = IssueStatus.DONE


def slots(count: int) -> list[reorder.ColumnSlot]:
    return [reorder.ColumnSlot(issue_id=uuid4(), position=index) for index in range(count)]


def final_order(plan: reorder.MovePlan, destination: list[reorder.ColumnSlot]) -> list:
    """Destination ids (plus the mover) ordered by their planned positions."""
    placed = {slot.issue_id: plan.updates.get(slot.issue_id, slot.position) for slot in destination}
    placed[plan.issue_id] = plan.to_position
    return sorted(placed, key=placed.get)


class TestClampPosition:
    """Test bounding of requested positions."""

    def test_within_range_unchanged(self):
        assert reorder.clamp_position(2, 5) == 2

    def test_past_end_appends(self):
        assert reorder.clamp_position(99, 3) == 3

    def test_negative_clamps_to_top(self):
        assert reorder.clamp_position(-4, 3) == 0

    def test_empty_column(self):
        assert reorder.clamp_position(7, 0) == 0


class TestPlanMoveSameColumn:
    """Test planning moves within one column."""

    def test_move_last_to_top(self):
        """[A0 B1 C2], move C to 0 -> [C0 A1 B2]."""
        a, b, c = slots(3)
        destination = [a, b]
        plan = reorder.plan_move(c.issue_id, TODO, 2, TODO, 0, destination=destination)

        assert plan.to_position == 0
        assert plan.updates == {a.issue_id: 1, b.issue_id: 2}
        assert final_order(plan, destination) == [c.issue_id, a.issue_id, b.issue_id]

    def test_move_top_to_middle(self):
        """[A0 B1 C2 D3], move A to 2 -> [B0 C1 A2 D3]."""
        a, b, c, d = slots(4)
        destination = [b, c, d]
        plan = reorder.plan_move(a.issue_id, TODO, 0, TODO, 2, destination=destination)

        assert plan.to_position == 2
        assert plan.updates == {b.issue_id: 0, c.issue_id: 1}
        assert final_order(plan, destination) == [b.issue_id, c.issue_id, a.issue_id, d.issue_id]

    def test_same_position_is_noop(self):
        a, b, c = slots(3)
        plan = reorder.plan_move(b.issue_id, TODO, 1, TODO, 1, destination=[a, c])

        assert plan.is_noop
        assert plan.updates == {}

    def test_past_end_on_last_issue_is_noop(self):
        """The last issue asked to move past the end stays where it is."""
        a, b, c = slots(3)
        plan = reorder.plan_move(c.issue_id, TODO, 2, TODO, 50, destination=[a, b])

        assert plan.to_position == 2
        assert plan.is_noop

    def test_clamps_past_end(self):
        a, b, c = slots(3)
        destination = [b, c]
        plan = reorder.plan_move(a.issue_id, TODO, 0, TODO, 10, destination=destination)

        assert plan.to_position == 2
        assert final_order(plan, destination) == [b.issue_id, c.issue_id, a.issue_id]


class TestPlanMoveAcrossColumns:
    """Test planning status changes."""

    def test_source_closes_gap_and_destination_shifts(self):
        """TODO [A0 B1 C2], DONE [D0]; move B to DONE 0 -> TODO [A0 C1], DONE [B0 D1]."""
        a, b, c = slots(3)
        (d,) = slots(1)
        plan = reorder.plan_move(b.issue_id, TODO, 1, DONE, 0, destination=[d], source=[a, c])

        assert plan.status_changed
        assert plan.to_status == DONE
        assert plan.to_position == 0
        assert plan.updates == {c.issue_id: 1, d.issue_id: 1}

    def test_into_empty_column(self):
        a, b = slots(2)
        plan = reorder.plan_move(a.issue_id, TODO, 0, IN_PROGRESS, 3, destination=[], source=[b])

        assert plan.to_position == 0
        assert plan.updates == {b.issue_id: 0}

    def test_same_index_in_other_column_is_not_noop(self):
        a, b = slots(2)
        plan = reorder.plan_move(a.issue_id, TODO, 0, DONE, 0, destination=[], source=[b])

        assert not plan.is_noop
        assert plan.status_changed

    def test_new_issue_insert(self):
        """Inserting a new issue at 1 shifts everything from 1 down."""
        a, b, c = slots(3)
        new_id = uuid4()
        plan = reorder.plan_move(new_id, None, None, TODO, 1, destination=[a, b, c])

        assert not plan.status_changed
        assert plan.to_position == 1
        assert plan.updates == {b.issue_id: 2, c.issue_id: 3}


class TestApplyMove:
    """Test moves applied to stored columns."""

    def test_reorder_within_column(self, session_factory, seed):
        make_column(session_factory, seed.org_a, seed.alice, TODO, "A", "B", "C")

        with session_factory() as session:
            positions.lock_board(session, seed.org_a)
            issue = session.query(Issue).filter(Issue.title == "C").one()
            reorder.apply_move(session, issue, TODO, 0)
            session.commit()

        assert column_titles(session_factory, seed.org_a, TODO) == ["C", "A", "B"]
        assert column_positions(session_factory, seed.org_a, TODO) == [0, 1, 2]

    def test_move_across_columns(self, session_factory, seed):
        make_column(session_factory, seed.org_a, seed.alice, TODO, "A", "B", "C")
        make_column(session_factory, seed.org_a, seed.alice, DONE, "D")

        with session_factory() as session:
            positions.lock_board(session, seed.org_a)
            issue = session.query(Issue).filter(Issue.title == "B").one()
            plan = reorder.apply_move(session, issue, DONE, 0)
            session.commit()

        assert plan.status_changed
        assert column_titles(session_factory, seed.org_a, TODO) == ["A", "C"]
        assert column_titles(session_factory, seed.org_a, DONE) == ["B", "D"]
        assert column_positions(session_factory, seed.org_a, TODO) == [0, 1]
        assert column_positions(session_factory, seed.org_a, DONE) == [0, 1]

    def test_insert_at_position(self, session_factory, seed):
        make_column(session_factory, seed.org_a, seed.alice, TODO, "A", "B")

        with session_factory() as session:
            positions.lock_board(session, seed.org_a)
            issue = Issue(
                id=uuid4(),
                organization_id=seed.org_a,
                title="N",
                status=TODO,
                reporter_id=seed.alice,
            )
            reorder.insert_issue(session, issue, requested_position=0)
            session.commit()

        assert column_titles(session_factory, seed.org_a, TODO) == ["N", "A", "B"]
        assert column_positions(session_factory, seed.org_a, TODO) == [0, 1, 2]

    def test_sequence_of_moves_stays_dense(self, session_factory, seed):
        make_column(session_factory, seed.org_a, seed.alice, TODO, "A", "B", "C", "D")
        moves = [
            ("A", DONE, 0),
            ("C", IN_PROGRESS, 5),
            ("D", DONE, 0),
            ("B", TODO, -1),
            ("A", IN_PROGRESS, 0),
            ("D", TODO, 1),
            ("C", DONE, 1),
        ]
        for title, status, position in moves:
            with session_factory() as session:
                positions.lock_board(session, seed.org_a)
                issue = session.query(Issue).filter(Issue.title == title).one()
                reorder.apply_move(session, issue, status, position)
                session.commit()

        with session_factory() as session:
            positions.verify_board_density(session, seed.org_a)

        assert column_titles(session_factory, seed.org_a, TODO) == ["B", "D"]
        assert column_titles(session_factory, seed.org_a, IN_PROGRESS) == ["A"]
        assert column_titles(session_factory, seed.org_a, DONE) == ["C"]


class TestStaleSnapshot:
    """Plans computed from snapshots taken before another writer committed."""

    def test_stale_plans_break_density_and_are_detected(self, session_factory, seed):
        """Two writers both see DONE empty and both place their issue at DONE 0."""
        ids = make_column(session_factory, seed.org_a, seed.alice, TODO, "A", "B", "C")
        a = reorder.ColumnSlot(ids["A"], 0)
        b = reorder.ColumnSlot(ids["B"], 1)
        c = reorder.ColumnSlot(ids["C"], 2)

        stale_done: list[reorder.ColumnSlot] = []
        plan_a = reorder.plan_move(a.issue_id, TODO, 0, DONE, 0, destination=stale_done, source=[b, c])
        plan_b = reorder.plan_move(b.issue_id, TODO, 1, DONE, 0, destination=stale_done, source=[a, c])

        # Apply both without the board lock, as two unserialized writers would
        with session_factory() as session:
            for plan in (plan_a, plan_b):
                mover = session.get(Issue, plan.issue_id)
                mover.status = plan.to_status
                mover.position = plan.to_position
                for issue_id, new_position in plan.updates.items():
                    session.get(Issue, issue_id).position = new_position
                session.flush()
            session.commit()

        assert column_positions(session_factory, seed.org_a, DONE) == [0, 0]
        assert not positions.is_dense(column_positions(session_factory, seed.org_a, DONE))

        with session_factory() as session:
            with pytest.raises(positions.DensityViolationError):
                positions.verify_board_density(session, seed.org_a)

    def test_serialized_moves_keep_density(self, session_factory, seed):
        """The same two moves, each planned under the lock, stay dense."""
        make_column(session_factory, seed.org_a, seed.alice, TODO, "A", "B", "C")

        for title in ("A", "B"):
            with session_factory() as session:
                positions.lock_board(session, seed.org_a)
                issue = session.query(Issue).filter(Issue.title == title).one()
                reorder.apply_move(session, issue, DONE, 0)
                session.commit()

        assert column_titles(session_factory, seed.org_a, DONE) == ["B", "A"]
        assert column_titles(session_factory, seed.org_a, TODO) == ["C"]
        with session_factory() as session:
            positions.verify_board_density(session, seed.org_a)
