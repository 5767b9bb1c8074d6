"""
tests.test_matchmaking
~~~~~~~~~~~~~~~~~~~~~~

MatchmakingQueue 单元测试：兼容规则、FIFO、去重与上一任搭档回避策略。
"""
from __future__ import annotations

import pytest

from app.core.exceptions import AlreadyPairedError
from app.services.matchmaking import MatchmakingQueue, is_compatible
from app.services.registry import Connection


def make_conn(cid: str, tag: str, looking_for: set[str] | None = None) -> Connection:
    conn = Connection(cid)
    conn.negotiation_id = f"peer-{cid}"
    conn.identity_tag = tag
    conn.preference_filter = frozenset(looking_for or ())
    return conn


class TestCompatibility:
    """测试双向偏好检查。"""

    def test_empty_filters_accept_anyone(self) -> None:
        assert is_compatible(make_conn("a", "homem"), make_conn("b", "trans"))

    def test_requester_filter_must_contain_candidate(self) -> None:
        a = make_conn("a", "homem", {"mulher"})
        assert not is_compatible(a, make_conn("b", "homem"))
        assert is_compatible(a, make_conn("c", "mulher"))

    def test_candidate_filter_must_contain_requester(self) -> None:
        b = make_conn("b", "mulher", {"mulher"})
        assert not is_compatible(make_conn("a", "homem"), b)

    def test_never_matches_self(self) -> None:
        a = make_conn("a", "homem")
        assert not is_compatible(a, a)


class TestMatchmakingQueue:
    """测试入队、匹配与出队。"""

    def test_first_enqueue_waits(self) -> None:
        queue = MatchmakingQueue(policy="off")
        assert queue.enqueue(make_conn("a", "homem")) is None
        assert queue.waiting_ids() == ["a"]

    def test_compatible_pair_matches_and_empties_queue(self) -> None:
        queue = MatchmakingQueue(policy="off")
        a = make_conn("a", "homem")
        b = make_conn("b", "mulher", {"homem"})

        queue.enqueue(a)
        partner = queue.enqueue(b)

        assert partner is a
        assert len(queue) == 0

    def test_first_eligible_in_arrival_order_wins(self) -> None:
        queue = MatchmakingQueue(policy="off")
        queue.enqueue(make_conn("x", "homem", {"trans"}))
        queue.enqueue(make_conn("y", "mulher", {"trans"}))
        queue.enqueue(make_conn("z", "mulher", {"trans"}))
        assert queue.waiting_ids() == ["x", "y", "z"]

        partner = queue.enqueue(make_conn("t", "trans"))

        assert partner is not None
        assert partner.connection_id == "x"
        assert queue.waiting_ids() == ["y", "z"]

    def test_disjoint_filters_never_match(self) -> None:
        queue = MatchmakingQueue(policy="off")
        a = make_conn("a", "homem", {"mulher"})
        b = make_conn("b", "homem", {"mulher"})

        for _ in range(3):
            assert queue.enqueue(a) is None
            assert queue.enqueue(b) is None

        assert sorted(queue.waiting_ids()) == ["a", "b"]

    def test_reenqueue_replaces_entry(self) -> None:
        queue = MatchmakingQueue(policy="off")
        a = make_conn("a", "homem", {"trans"})
        b = make_conn("b", "homem", {"trans"})
        queue.enqueue(a)
        queue.enqueue(b)
        queue.enqueue(a)

        assert queue.waiting_ids() == ["b", "a"]
        assert len(queue) == 2

    def test_enqueue_while_paired_is_rejected(self) -> None:
        queue = MatchmakingQueue()
        a = make_conn("a", "homem")
        a.current_room_id = "room_a_b"

        with pytest.raises(AlreadyPairedError):
            queue.enqueue(a)
        assert "a" not in queue

    def test_remove_is_idempotent(self) -> None:
        queue = MatchmakingQueue()
        queue.enqueue(make_conn("a", "homem", {"trans"}))

        assert queue.remove("a") is True
        assert queue.remove("a") is False


class TestRepeatPartnerPolicy:
    """测试上一任搭档回避策略。"""

    def _former_pair(self) -> tuple[Connection, Connection]:
        a = make_conn("a", "homem", {"mulher"})
        b = make_conn("b", "mulher")
        a.last_partner_id = "b"
        b.last_partner_id = "a"
        return a, b

    def test_off_allows_immediate_rematch(self) -> None:
        queue = MatchmakingQueue(policy="off")
        a, b = self._former_pair()
        queue.enqueue(a)
        assert queue.enqueue(b) is a

    def test_strict_skips_former_partner_for_one_round(self) -> None:
        queue = MatchmakingQueue(policy="strict")
        a, b = self._former_pair()
        queue.enqueue(a)

        assert queue.enqueue(b) is None
        assert queue.waiting_ids() == ["a", "b"]
        assert a.last_partner_id is None and b.last_partner_id is None

        # 下一轮两人可再次匹配
        assert queue.enqueue(a) is b
        assert len(queue) == 0

    def test_strict_never_blocks_indefinitely(self) -> None:
        queue = MatchmakingQueue(policy="strict")
        a, b = self._former_pair()

        matches = 0
        for _ in range(5):
            for conn in (a, b):
                if queue.enqueue(conn) is not None:
                    matches += 1

        assert matches > 0

    def test_strict_prefers_other_candidate(self) -> None:
        queue = MatchmakingQueue(policy="strict")
        a, b = self._former_pair()
        c = make_conn("c", "mulher", {"mulher"})
        queue.enqueue(a)
        queue.enqueue(c)

        assert queue.enqueue(b) is c
        assert queue.waiting_ids() == ["a"]

    def test_soft_prefers_other_candidates(self) -> None:
        queue = MatchmakingQueue(policy="soft")
        a, b = self._former_pair()
        c = make_conn("c", "mulher", {"mulher"})  # 与 a 不兼容，与 b 兼容
        queue.enqueue(a)
        queue.enqueue(c)

        assert queue.enqueue(b) is c
        assert queue.waiting_ids() == ["a"]

    def test_soft_waives_when_pool_is_otherwise_empty(self) -> None:
        queue = MatchmakingQueue(policy="soft")
        a, b = self._former_pair()
        queue.enqueue(a)
        assert queue.enqueue(b) is a
