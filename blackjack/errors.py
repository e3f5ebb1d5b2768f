"""Exceptions raised by the blackjack engine."""


class BlackjackError(Exception):
    """Base class for all engine errors."""


class InputError(BlackjackError):
    """A request that cannot be honoured. Round state is left untouched."""


class IllegalActionError(InputError):
    """Action not allowed in the current state (e.g. double on 3 cards)."""


class InvalidBetError(InputError):
    """Bet amount is not a positive amount within table limits."""


class InsufficientFundsError(InputError):
    """Wallet cannot cover the requested wager."""


class NotFoundError(InputError):
    """Unknown round, account or CPU profile."""


class ShoeError(BlackjackError):
    """The card supply failed: service unreachable, shoe unknown or exhausted."""


class PersistenceError(BlackjackError):
    """Settlement could not be written. Safe to retry the report."""
