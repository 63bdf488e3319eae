"""
Account Feature Layers

Optional behaviors (overdraft protection, per-withdrawal insurance fee,
premium interest bonus) stacked on top of an account. A FeatureStack
holds an explicit list of layers, outermost first. Resolving an
operation walks that list: each layer may pass the operation on, or
short-circuit with its own Decision. When no layer decides, the base
account policy does.

Only layers that extend the account's limits may approve an operation on
their own; every other layer can only pass through or refuse.
"""

from decimal import Decimal
from dataclasses import dataclass, replace
from typing import ClassVar, List, Optional, Sequence, Tuple

from .domain import TransactionType, FailureReason, OperationResult, AmountLike, as_amount
from .states import AccountState
from .policies import (
    Operation, PolicyContext, Decision, base_policy, check_state, check_amount
)
from .accounts import Account, AccountLike, AccountType, complete_transfer
from .config import TellerlineConfig, get_config
from .logging_config import get_logger


logger = get_logger("tellerline.features")


@dataclass(frozen=True)
class FeatureLayer:
    """Base layer: passes everything through unchanged"""
    name: ClassVar[str] = "feature"
    extends_limit: ClassVar[bool] = False

    def surcharge(self, operation: Operation) -> Decimal:
        """Extra debit charged when the operation succeeds beneath this layer"""
        return Decimal('0')

    def screen(self, operation: Operation, context: PolicyContext) -> Optional[Decision]:
        """Decide the operation here, or return None to pass it inward"""
        return None

    def adjust_interest(self, interest: Decimal) -> Decimal:
        return interest

    def annotate(self, details: str) -> str:
        return details


@dataclass(frozen=True)
class OverdraftLayer(FeatureLayer):
    """
    Lets withdrawals take the balance down to ``-limit``

    Withdrawals the balance can cover go to the inner layers untouched, so
    a minimum balance rule beneath still refuses them.
    Anything larger is decided here: state and amount are re-checked,
    then the debit is approved if it stays within the limit, bypassing
    the inner insufficient-funds check.
    """
    limit: Decimal = Decimal('500')
    name: ClassVar[str] = "overdraft"
    extends_limit: ClassVar[bool] = True

    def __post_init__(self):
        limit = as_amount(self.limit)
        if limit <= 0:
            raise ValueError("Overdraft limit must be positive")
        object.__setattr__(self, 'limit', limit)

    def screen(self, operation: Operation, context: PolicyContext) -> Optional[Decision]:
        if operation.kind != TransactionType.WITHDRAW:
            return None

        # Covered by the balance: inner rules (minimum balance included) decide
        if operation.total_debit <= context.balance:
            return None

        rejection = check_state(operation, context, self.name) or check_amount(operation, self.name)
        if rejection:
            return rejection

        new_balance = context.balance - operation.total_debit
        if new_balance < -self.limit:
            return Decision.reject(
                FailureReason.INSUFFICIENT_FUNDS,
                f"Overdraft limit exceeded. Limit: {self.limit}, Balance: {context.balance}",
                self.name
            )

        return Decision.approve(
            -operation.amount,
            decided_by=self.name,
            message=f"Overdraft withdrawal: {operation.amount}. New Balance: {new_balance}"
        )

    def annotate(self, details: str) -> str:
        return f"{details} [Overdraft Protection: ${self.limit:.2f}]"


@dataclass(frozen=True)
class FeeLayer(FeatureLayer):
    """Charges a fixed insurance fee after each successful withdrawal"""
    fee: Decimal = Decimal('0.50')
    name: ClassVar[str] = "insurance"

    def __post_init__(self):
        fee = as_amount(self.fee)
        if fee < 0:
            raise ValueError("Fee cannot be negative")
        object.__setattr__(self, 'fee', fee)

    def surcharge(self, operation: Operation) -> Decimal:
        if operation.kind == TransactionType.WITHDRAW:
            return self.fee
        return Decimal('0')

    def annotate(self, details: str) -> str:
        return f"{details} [Insured]"


@dataclass(frozen=True)
class BonusLayer(FeatureLayer):
    """Premium accounts earn a percentage bonus on computed interest"""
    rate: Decimal = Decimal('0.10')
    name: ClassVar[str] = "premium"

    def __post_init__(self):
        rate = as_amount(self.rate)
        if rate < 0:
            raise ValueError("Bonus rate cannot be negative")
        object.__setattr__(self, 'rate', rate)

    def adjust_interest(self, interest: Decimal) -> Decimal:
        return interest + interest * self.rate

    def annotate(self, details: str) -> str:
        return f"PREMIUM {details}"


def resolve_through(
    layers: Sequence[FeatureLayer],
    operation: Operation,
    context: PolicyContext
) -> Tuple[Decision, int]:
    """
    Fold an operation through the layers, outermost first

    Returns:
        The decision and the depth that produced it (``len(layers)`` when
        the base policy decided). Fees of layers above that depth are
        already folded into an approved decision's delta.

    Raises:
        ValueError: If a layer that does not extend limits approves on its own
    """
    fees = Decimal('0')
    for depth, layer in enumerate(layers):
        decision = layer.screen(operation, context)
        if decision is not None:
            if decision.approved and not layer.extends_limit:
                raise ValueError(f"Layer {layer.name} may not approve operations on its own")
            return _charge(decision, fees), depth

        fee = layer.surcharge(operation)
        if fee:
            fees += fee
            operation = replace(operation, surcharge=operation.surcharge + fee)

    return _charge(base_policy(operation, context), fees), len(layers)


def _charge(decision: Decision, fees: Decimal) -> Decision:
    if decision.approved and fees:
        return replace(decision, delta=decision.delta - fees)
    return decision


def layers_from_config(
    config: Optional[TellerlineConfig] = None,
    premium: bool = False,
    insurance: bool = False,
    overdraft: bool = False
) -> List[FeatureLayer]:
    """
    Build the standard layers with configured defaults

    Order is premium, insurance, overdraft (outermost first), so the
    insurance fee is also charged on withdrawals the overdraft covers.
    """
    config = config or get_config()
    layers: List[FeatureLayer] = []
    if premium:
        layers.append(BonusLayer(config.premium_bonus_rate))
    if insurance:
        layers.append(FeeLayer(config.insurance_fee))
    if overdraft:
        layers.append(OverdraftLayer(config.default_overdraft_limit))
    return layers


class FeatureStack:
    """
    An account with feature layers applied

    Layers are listed outermost first. Wrapping a FeatureStack in another
    flattens both into one list with the new layers outside.
    """

    def __init__(self, account: AccountLike, layers: Sequence[FeatureLayer] = ()):
        if isinstance(account, FeatureStack):
            self._layers: List[FeatureLayer] = list(layers) + account.layers
            self._account = account.base
        else:
            self._layers = list(layers)
            self._account = account

    def wrap(self, layer: FeatureLayer) -> 'FeatureStack':
        """Return a new stack with ``layer`` as the outermost layer"""
        return FeatureStack(self, [layer])

    @property
    def layers(self) -> List[FeatureLayer]:
        return list(self._layers)

    @property
    def base(self) -> Account:
        return self._account

    @property
    def id(self) -> str:
        return self._account.id

    @property
    def holder(self) -> str:
        return self._account.holder

    @property
    def account_type(self) -> AccountType:
        return self._account.account_type

    @property
    def balance(self) -> Decimal:
        return self._account.balance

    @property
    def state(self) -> AccountState:
        return self._account.state

    @property
    def available_balance(self) -> Decimal:
        return self._account.available_balance

    @property
    def last_modified(self):
        return self._account.last_modified

    def set_state(self, new_state: AccountState) -> None:
        self._account.set_state(new_state)

    def close(self) -> None:
        self._account.close()

    def context(self) -> PolicyContext:
        return self._account.context()

    def resolve(self, operation: Operation, context: PolicyContext) -> Decision:
        """Pure decision for ``operation`` against ``context``"""
        decision, _ = resolve_through(self._layers, operation, context)
        return decision

    def deposit(self, amount: AmountLike) -> OperationResult:
        return self._account.execute(
            Operation(TransactionType.DEPOSIT, as_amount(amount)), self.resolve
        )

    def withdraw(self, amount: AmountLike) -> OperationResult:
        result = self._account.execute(
            Operation(TransactionType.WITHDRAW, as_amount(amount)), self.resolve
        )
        if result and result.message:
            logger.info("Account %s: %s", self.id, result.message)
        return result

    def transfer(self, target: Optional[AccountLike], amount: AmountLike) -> OperationResult:
        operation = Operation(TransactionType.TRANSFER, as_amount(amount))
        return complete_transfer(self._account, target, operation, self.resolve)

    def credit(self, amount: Decimal) -> Decimal:
        return self._account.credit(amount)

    def calculate_interest(self) -> Decimal:
        """Base interest adjusted innermost layer first"""
        interest = self._account.calculate_interest()
        for layer in reversed(self._layers):
            interest = layer.adjust_interest(interest)
        return interest

    def describe(self) -> str:
        details = self._account.describe()
        for layer in reversed(self._layers):
            details = layer.annotate(details)
        return details

    def __repr__(self) -> str:
        names = ", ".join(layer.name for layer in self._layers)
        return f"FeatureStack({self._account.id}, layers=[{names}])"
