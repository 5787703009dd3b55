from carbon_market.models.profile import Profile  # noqa: F401
from carbon_market.models.wallet import WalletTransaction  # noqa: F401
from carbon_market.models.purchase import CreditPurchase  # noqa: F401
