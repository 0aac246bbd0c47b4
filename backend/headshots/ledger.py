"""
Credit ledger.

Every balance change is a single atomic increment evaluated by the store
against the stored value, never a write-back of a balance the caller read
earlier. A debit is modelled as a ``Reservation`` which is either kept (the
generation succeeded) or released exactly once (the generation failed).
"""

import logging
import threading

from . import config
from .errors import DocumentNotFound, InsufficientCredits, PreconditionFailed
from .store import DocumentStore

logger = logging.getLogger("headshot_studio.ledger")


class Reservation:
    def __init__(self, user_id: str, amount: int, balance_after: int):
        self.user_id = user_id
        self.amount = amount
        self.balance_after = balance_after
        self.released = False
        self._lock = threading.Lock()

    def mark_released(self) -> bool:
        """Flip to released; False if it already was."""
        with self._lock:
            if self.released:
                return False
            self.released = True
            return True


class CreditLedger:
    def __init__(self, store: DocumentStore, collection: str = config.PROFILES):
        self.store = store
        self.collection = collection

    def balance(self, user_id: str) -> int:
        snap = self.store.get(self.collection, user_id)
        if not snap.exists:
            return 0
        return int(snap.to_dict().get("credits") or 0)

    def reserve(self, user_id: str, amount: int) -> Reservation:
        try:
            remaining = self.store.increment(self.collection, user_id, "credits", -amount, floor=0)
        except PreconditionFailed as e:
            logger.warning("Insufficient credits: user=%s requested=%s available=%s", user_id, amount, e.current)
            raise InsufficientCredits(user_id, amount, e.current)
        except DocumentNotFound:
            logger.warning("Reserve for user=%s without a profile record", user_id)
            raise InsufficientCredits(user_id, amount, 0)
        logger.info("Reserved %s credits for user=%s, remaining=%s", amount, user_id, remaining)
        return Reservation(user_id, amount, remaining)

    def release(self, reservation: Reservation) -> int:
        if not reservation.mark_released():
            logger.info("Reservation for user=%s already released", reservation.user_id)
            return self.balance(reservation.user_id)
        try:
            balance = self.store.increment(self.collection, reservation.user_id, "credits", reservation.amount)
        except Exception:
            # let a later attempt retry the refund
            reservation.released = False
            raise
        logger.info("Released %s credits for user=%s, balance=%s", reservation.amount, reservation.user_id, balance)
        return balance

    def purchase(self, user_id: str, amount: int = config.CREDIT_PACK_SIZE) -> int:
        balance = self.store.increment(self.collection, user_id, "credits", amount)
        logger.info("Added %s credits for user=%s, balance=%s", amount, user_id, balance)
        return balance
