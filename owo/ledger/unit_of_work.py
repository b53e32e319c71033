from collections.abc import Callable

from loguru import logger

from owo.errors import LedgerError, StorageError


class UnitOfWork:
    """Groups several writes so they take effect together or not at all.

    Each completed step registers how to undo itself. If a later step raises,
    the registered undos run newest-first before the error leaves the block.
    Business-rule errors propagate unchanged; anything else is reported as a
    StorageError.
    """

    def __init__(self, name: str):
        self.name = name
        self._undo: list[tuple[str, Callable[[], object]]] = []

    def __enter__(self) -> "UnitOfWork":
        return self

    def on_rollback(self, label: str, undo: Callable[[], object]) -> None:
        self._undo.append((label, undo))

    def _rollback(self) -> None:
        while self._undo:
            label, undo = self._undo.pop()
            try:
                undo()
            except Exception as e:
                logger.opt(exception=e).error("Rollback step '{}' of {} failed", label, self.name)

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._undo.clear()
            return False

        if isinstance(exc, LedgerError) or not isinstance(exc, Exception):
            logger.warning("Rolling back {}: {}", self.name, exc)
            self._rollback()
            return False

        logger.opt(exception=exc).error("Rolling back {} after unexpected failure", self.name)
        self._rollback()
        raise StorageError(f"{self.name} failed: {exc}") from exc
