"""
Swap Domain Errors

Each error is a subclass of one kind from the shared taxonomy, so callers
can react to the kind (conflict, validation, authorization) while clients
still receive the precise code.
"""

from shared.domain.exceptions import (
    AuthorizationDenied,
    Conflict,
    NotFound,
    ValidationFailed,
)


class SwapNotFound(NotFound):
    """Swap does not exist"""
    default_code = 'SWAP_NOT_FOUND'


class ProposalNotFound(NotFound):
    """Proposal does not exist"""
    default_code = 'PROPOSAL_NOT_FOUND'


class AuctionNotFound(NotFound):
    """Auction does not exist"""
    default_code = 'AUCTION_NOT_FOUND'


class TargetingNotFound(NotFound):
    """Targeting relationship does not exist"""
    default_code = 'TARGETING_NOT_FOUND'


class SwapNotAvailable(Conflict):
    """Swap is no longer accepting proposals"""
    default_code = 'SWAP_NOT_AVAILABLE'


class InvalidTransition(Conflict):
    """Transition is not allowed from the current status"""
    default_code = 'INVALID_TRANSITION'


class ConcurrentModification(Conflict):
    """Swap was changed by a concurrent operation"""
    default_code = 'CONCURRENT_MODIFICATION'


class AuctionStillActive(Conflict):
    """Auction has not ended yet"""
    default_code = 'AUCTION_STILL_ACTIVE'


class SelfProposalNotAllowed(AuthorizationDenied):
    """Owners cannot propose against their own swap"""
    default_code = 'SELF_PROPOSAL_NOT_ALLOWED'


class NotSwapOwner(AuthorizationDenied):
    """Only the swap owner may perform this operation"""
    default_code = 'NOT_SWAP_OWNER'


class BookingNotEligible(ValidationFailed):
    """Offered booking does not belong to the proposer or is not available"""
    default_code = 'BOOKING_NOT_ELIGIBLE'


class CashAmountBelowMinimum(ValidationFailed):
    """Cash offer is below the minimum accepted amount"""
    default_code = 'CASH_AMOUNT_BELOW_MINIMUM'


class CurrencyMismatch(ValidationFailed):
    """Cash offer currency differs from the swap currency"""
    default_code = 'CURRENCY_MISMATCH'


class PaymentMethodRequired(ValidationFailed):
    """Cash offers need a payment method"""
    default_code = 'PAYMENT_METHOD_REQUIRED'


class InvalidMessage(ValidationFailed):
    """Proposal message is empty or too long"""
    default_code = 'INVALID_MESSAGE'


class ProposalTypeNotAccepted(ValidationFailed):
    """Swap does not accept this type of proposal"""
    default_code = 'PROPOSAL_TYPE_NOT_ACCEPTED'


class InvalidPaymentTypes(ValidationFailed):
    """Payment type preference is inconsistent"""
    default_code = 'INVALID_PAYMENT_TYPES'


class InvalidAuctionSettings(ValidationFailed):
    """Auction settings are inconsistent"""
    default_code = 'INVALID_AUCTION_SETTINGS'


class LastMinuteRestriction(ValidationFailed):
    """Auctions are not available for bookings starting within a week"""
    default_code = 'LAST_MINUTE_RESTRICTION'
