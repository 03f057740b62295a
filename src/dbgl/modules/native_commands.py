"""Native (host) commands attached to a profile or a template.

``NATIVECOMMANDS`` rows belong to exactly one owner: ``GAME_ID`` is set
for a profile's commands and ``TEMPLATE_ID`` for a template's, never both.
Commands are rewritten wholesale on every owner update and deleted
before their owner.  ``ORDERNR`` is the position in the owner's list.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from dbgl.core.db import UnitOfWork
from dbgl.core.models import NativeCommand
from dbgl.core.repository import BaseRepository


class Owner(str, Enum):
    PROFILE = "profile"
    TEMPLATE = "template"

    @property
    def column(self) -> str:
        return "GAME_ID" if self is Owner.PROFILE else "TEMPLATE_ID"

    @property
    def other_column(self) -> str:
        return "TEMPLATE_ID" if self is Owner.PROFILE else "GAME_ID"


_CREATE_QRY = (
    "INSERT INTO NATIVECOMMANDS(COMMAND, PARAMETERS, CWD, WAITFOR, ORDERNR, GAME_ID, TEMPLATE_ID) "
    "VALUES (?, ?, ?, ?, ?, ?, ?)"
)


class NativeCommandRepository(BaseRepository):
    def add_all(self, uow: UnitOfWork, owner: Owner, owner_id: int, commands: Iterable[NativeCommand]) -> None:
        game_id, template_id = (owner_id, None) if owner is Owner.PROFILE else (None, owner_id)
        with self._wrap(f"add {owner.value} native commands"):
            for order_nr, cmd in enumerate(commands):
                uow.exec(
                    _CREATE_QRY,
                    (cmd.command, cmd.parameters, cmd.cwd, cmd.wait_for, order_nr, game_id, template_id),
                )

    def remove_all(self, uow: UnitOfWork, owner: Owner, owner_id: int) -> None:
        with self._wrap(f"remove {owner.value} native commands"):
            uow.exec(
                f"DELETE FROM NATIVECOMMANDS WHERE {owner.column} = ? AND {owner.other_column} IS NULL",
                (owner_id,),
            )

    def replace_all(self, uow: UnitOfWork, owner: Owner, owner_id: int, commands: Iterable[NativeCommand]) -> None:
        self.remove_all(uow, owner, owner_id)
        self.add_all(uow, owner, owner_id, commands)

    def by_owner(
        self,
        owner: Owner,
        owner_id: int | None = None,
        uow: UnitOfWork | None = None,
    ) -> dict[int, tuple[NativeCommand, ...]]:
        """Commands grouped by owner id, each group in ``ORDERNR`` order.

        With *owner_id* only that owner's commands are read.
        """
        sql = (
            "SELECT COMMAND, PARAMETERS, CWD, WAITFOR, ORDERNR, "
            f"{owner.column} AS OWNER_ID FROM NATIVECOMMANDS "
            f"WHERE {owner.other_column} IS NULL AND {owner.column} IS NOT NULL"
        )
        params: tuple[int, ...] = ()
        if owner_id is not None:
            sql += f" AND {owner.column} = ?"
            params = (owner_id,)
        sql += f" ORDER BY {owner.column}, ORDERNR"

        grouped: dict[int, list[NativeCommand]] = {}
        for row in self._read(f"read {owner.value} native commands", sql, params, uow=uow):
            grouped.setdefault(row["OWNER_ID"], []).append(
                NativeCommand(
                    command=row["COMMAND"],
                    parameters=row["PARAMETERS"],
                    cwd=row["CWD"],
                    wait_for=bool(row["WAITFOR"]),
                    order_nr=row["ORDERNR"],
                )
            )
        return {key: tuple(cmds) for key, cmds in grouped.items()}
