from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import psycopg

from billsplit.domain.ledger import balance_deltas
from billsplit.domain.models import AllocationStrategy, SplitDetail, SplitResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceRecord:
    id: str
    display_name: str
    balance_cents: int


@dataclass(frozen=True)
class SavedSplit:
    id: str
    title: str
    payer_id: str
    result: SplitResult


class BalanceLedgerRepository:
    """
    Persists splits and keeps people.balance_cents in step with them.

    A positive balance means the person is owed money.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url.strip()

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    def _connect(self):
        if not self.enabled:
            raise RuntimeError("DATABASE_URL not configured")
        return psycopg.connect(self.database_url)

    def save_split(self, *, title: str, payer_id: str, result: SplitResult) -> tuple[str, Dict[str, int]]:
        """
        Store the split and apply its balance deltas in one transaction.

        Person rows are locked in id order before any update so two splits
        touching the same people cannot deadlock or interleave.
        """
        deltas = balance_deltas(result, payer_id)
        person_ids = sorted(deltas)

        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id::text
                FROM people
                WHERE id = ANY(%s::uuid[])
                ORDER BY id
                FOR UPDATE
                """,
                (person_ids,),
            )
            found = {row[0] for row in cur.fetchall()}
            missing = [pid for pid in person_ids if pid not in found]
            if missing:
                raise LookupError(f"unknown people: {', '.join(missing)}")

            cur.execute(
                """
                INSERT INTO split_bills (title, total_cents, payer_id, strategy)
                VALUES (%s, %s, %s, %s)
                RETURNING id::text
                """,
                (title, result.total_cents, payer_id, result.strategy.value),
            )
            split_id = cur.fetchone()[0]

            for pid in sorted(result.details):
                detail = result.details[pid]
                cur.execute(
                    """
                    INSERT INTO split_participants
                        (split_id, person_id, amount_cents, percentage, shares, adjustment_cents)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (split_id, pid, detail.amount_cents, detail.percentage, detail.shares, detail.adjustment_cents),
                )

            for pid in person_ids:
                cur.execute(
                    """
                    UPDATE people
                    SET balance_cents = balance_cents + %s
                    WHERE id = %s
                    """,
                    (deltas[pid], pid),
                )

            conn.commit()

        logger.info("saved split %s (%s, %d cents, %d people)", split_id, result.strategy.value, result.total_cents, len(result.details))
        return split_id, deltas

    def get_balances(self, *, participant_ids: Sequence[str]) -> list[BalanceRecord]:
        if not participant_ids:
            return []

        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id::text, display_name, balance_cents
                FROM people
                WHERE id = ANY(%s::uuid[])
                ORDER BY id
                """,
                (list(participant_ids),),
            )
            return [
                BalanceRecord(id=row[0], display_name=row[1], balance_cents=int(row[2]))
                for row in cur.fetchall()
            ]

    def get_split(self, *, split_id: str) -> Optional[SavedSplit]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id::text, title, total_cents, payer_id::text, strategy
                FROM split_bills
                WHERE id = %s
                """,
                (split_id,),
            )
            head = cur.fetchone()
            if head is None:
                return None

            cur.execute(
                """
                SELECT person_id::text, amount_cents, percentage, shares, adjustment_cents
                FROM split_participants
                WHERE split_id = %s
                ORDER BY person_id
                """,
                (split_id,),
            )
            total_cents = int(head[2])
            details = {
                row[0]: SplitDetail(
                    amount_cents=int(row[1]),
                    percentage=row[2],
                    shares=int(row[3]),
                    adjustment_cents=int(row[4]),
                )
                for row in cur.fetchall()
            }

        result = SplitResult(
            strategy=AllocationStrategy(head[4]),
            total_cents=total_cents,
            details=details,
        )
        return SavedSplit(id=head[0], title=head[1], payer_id=head[3], result=result)

    def mark_participant_paid(self, *, split_id: str, participant_id: str) -> bool:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE split_participants
                SET has_paid = TRUE, paid_at = COALESCE(paid_at, now())
                WHERE split_id = %s AND person_id = %s
                """,
                (split_id, participant_id),
            )
            updated = cur.rowcount > 0
            conn.commit()
            return updated

    def get_paid_participant_ids(self, *, split_id: str) -> list[str]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT person_id::text
                FROM split_participants
                WHERE split_id = %s AND has_paid
                ORDER BY person_id
                """,
                (split_id,),
            )
            return [row[0] for row in cur.fetchall()]
