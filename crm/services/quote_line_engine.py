"""
Quote line derivation engine.

Keeps the numeric fields of one quote line consistent with each other:

    quote_unit_price              = override ?? product_unit_price
    unit discount pair            = percent <-> amount (relative to quote_unit_price)
    final_unit_price              = quote_unit_price - unit_price_discount_amount
    subtotal_before_row_discounts = quoted_quantity * final_unit_price
    row discount pair             = percent <-> amount (relative to the subtotal)
    final_subtotal                = subtotal_before_row_discounts - discount_amount_on_subtotal
    vat_unit_amount               = final_unit_price * vat_percent / 100
    vat_on_subtotal               = vat_unit_amount * quoted_quantity
    gross_subtotal                = final_subtotal + vat_on_subtotal

The engine is a single pure function: the caller passes the whole line and an
EditSignal saying which member of each discount pair the user just typed into
(or that this is the one-time load of a persisted line). Nothing is kept
between calls.
"""
import enum
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Dict, List, Mapping, Optional

# A computed value within TOLERANCE of the current one is not written, so a
# typed value such as '200.0009' keeps its form here. Persistence rounds every
# stored number to FIXED_PLACES.
TOLERANCE = Decimal('0.001')
FIXED_PLACES = Decimal('0.001')
HUNDRED = Decimal('100')
ZERO = Decimal('0')
# Inputs of magnitude 1e100 and up (or below 1e-99) count as 0, which keeps
# every product and quotient the rules compute inside the decimal context.
MAX_EXPONENT = 99


class LastEdited(enum.Enum):
    """Which member of a percent/amount pair the user edited last."""
    PERCENT = 'percent'
    AMOUNT = 'amount'

    @classmethod
    def parse(cls, value) -> Optional['LastEdited']:
        """Accept an enum member, its value ('percent'/'amount') or None."""
        if value is None or value == '':
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown last-edited marker: {value!r}")


class RuleSet(enum.Enum):
    """
    Derivation rule sets.

    FULL covers unit price, row discounts and VAT. BASIC is the legacy rule set
    that stops at the final unit price.
    """
    FULL = 'full'
    BASIC = 'basic'

    @classmethod
    def parse(cls, value) -> 'RuleSet':
        if value is None or value == '':
            return cls.FULL
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown rule set: {value!r}")


class EditSignal:
    """
    Input discriminator for one derivation pass.

    unit_price_discount / subtotal_discount name the pair member the user
    edited (LastEdited or None). initial_load requests the one-time
    reconciliation of a freshly loaded persisted line; while it is set the
    pair-sync rules do not run.
    """

    __slots__ = ('unit_price_discount', 'subtotal_discount', 'initial_load')

    def __init__(self, unit_price_discount=None, subtotal_discount=None, initial_load=False):
        self.unit_price_discount = LastEdited.parse(unit_price_discount)
        self.subtotal_discount = LastEdited.parse(subtotal_discount)
        self.initial_load = bool(initial_load)

    def __repr__(self):
        return (
            f"<EditSignal(unit_price_discount={self.unit_price_discount}, "
            f"subtotal_discount={self.subtotal_discount}, initial_load={self.initial_load})>"
        )


NO_EDIT = EditSignal()
INITIAL_LOAD = EditSignal(initial_load=True)


class DerivationResult:
    """Updated field values plus the names of the fields that were rewritten."""

    __slots__ = ('values', 'changed')

    def __init__(self, values: Dict[str, Any], changed: List[str]):
        self.values = values
        self.changed = changed

    def __repr__(self):
        return f"<DerivationResult(changed={self.changed})>"


def is_absent(value) -> bool:
    """None and blank strings mean 'not entered'."""
    return value is None or (isinstance(value, str) and not value.strip())


def safe_number(value) -> Decimal:
    """
    Coerce any field value to a Decimal for computation.

    None, blank strings, booleans, anything that does not parse as a finite
    number and magnitudes outside 1e-99..1e99 count as 0. Never raises.
    """
    if is_absent(value) or isinstance(value, bool):
        return ZERO
    try:
        if isinstance(value, Decimal):
            number = value
        elif isinstance(value, (int, float)):
            number = Decimal(str(value))
        else:
            number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return ZERO
    if not number.is_finite() or number.is_zero():
        return ZERO
    if abs(number.adjusted()) > MAX_EXPONENT:
        return ZERO
    return number


def format_fixed(value) -> str:
    """Fixed-point string with 3 decimals (half-up), never '-0.000'."""
    if isinstance(value, Decimal) and value.is_finite():
        number = value
    else:
        number = safe_number(value)
    with localcontext() as ctx:
        # quantize needs every integer digit plus the 3 decimals
        ctx.prec = max(ctx.prec, number.adjusted() + 5)
        quantized = number.quantize(FIXED_PLACES, rounding=ROUND_HALF_UP)
        if quantized.is_zero():
            quantized = abs(quantized)
        return f"{quantized:.3f}"


class _LineState:
    """Working copy of a line; tracks which fields a pass rewrote."""

    def __init__(self, values: Mapping[str, Any]):
        self.values = dict(values)
        self.changed: List[str] = []

    def number(self, field: str) -> Decimal:
        return safe_number(self.values.get(field))

    def write(self, field: str, amount: Decimal, fill_absent: bool = False) -> bool:
        """Store amount unless it is within tolerance of the current value."""
        current = self.values.get(field)
        if abs(amount - safe_number(current)) <= TOLERANCE:
            if not (fill_absent and is_absent(current)):
                return False
        self.values[field] = format_fixed(amount)
        if field not in self.changed:
            self.changed.append(field)
        return True


def _sync_pair(state, signal, last_edited, base_field, percent_field, amount_field):
    base = state.number(base_field)
    percent = state.number(percent_field)
    amount = state.number(amount_field)

    if signal.initial_load:
        # Back-fill whichever member is missing; never touch a populated one
        if base > 0:
            if percent == 0 and amount > 0:
                state.write(percent_field, amount / base * HUNDRED)
            elif amount == 0 and percent > 0:
                state.write(amount_field, base * percent / HUNDRED)
        return

    # The sibling of the edited member becomes defined even when it rounds to 0
    if last_edited is LastEdited.PERCENT:
        state.write(amount_field, base * percent / HUNDRED, fill_absent=True)
    elif last_edited is LastEdited.AMOUNT:
        derived = amount / base * HUNDRED if base > 0 else ZERO
        state.write(percent_field, derived, fill_absent=True)


def _effective_unit_price(state, signal):
    override = state.values.get('product_unit_price_override')
    if is_absent(override):
        price = state.number('product_unit_price')
    else:
        price = safe_number(override)

    # A freshly loaded line keeps its persisted price so the form is not dirtied
    if signal.initial_load and state.number('quote_unit_price') > 0:
        return
    state.write('quote_unit_price', price)


def _unit_discount_pair(state, signal):
    _sync_pair(
        state, signal, signal.unit_price_discount,
        'quote_unit_price', 'unit_price_discount_percent', 'unit_price_discount_amount',
    )


def _final_unit_price(state, signal):
    state.write(
        'final_unit_price',
        state.number('quote_unit_price') - state.number('unit_price_discount_amount'),
    )


def _subtotal_before_row_discounts(state, signal):
    state.write(
        'subtotal_before_row_discounts',
        state.number('quoted_quantity') * state.number('final_unit_price'),
    )


def _row_discount_pair(state, signal):
    _sync_pair(
        state, signal, signal.subtotal_discount,
        'subtotal_before_row_discounts', 'discount_percent_on_subtotal', 'discount_amount_on_subtotal',
    )


def _final_subtotal(state, signal):
    state.write(
        'final_subtotal',
        state.number('subtotal_before_row_discounts') - state.number('discount_amount_on_subtotal'),
    )


def _vat_unit_amount(state, signal):
    state.write(
        'vat_unit_amount',
        state.number('final_unit_price') * state.number('vat_percent') / HUNDRED,
    )


def _vat_on_subtotal(state, signal):
    state.write(
        'vat_on_subtotal',
        state.number('vat_unit_amount') * state.number('quoted_quantity'),
    )


def _gross_subtotal(state, signal):
    state.write(
        'gross_subtotal',
        state.number('final_subtotal') + state.number('vat_on_subtotal'),
    )


# Topological order: each rule only reads fields written by rules before it.
# The unit discount pair runs before the final unit price because the final
# price reads the discount amount the pair may have just rewritten.
BASIC_RULES = (
    _effective_unit_price,
    _unit_discount_pair,
    _final_unit_price,
)

FULL_RULES = BASIC_RULES + (
    _subtotal_before_row_discounts,
    _row_discount_pair,
    _final_subtotal,
    _vat_unit_amount,
    _vat_on_subtotal,
    _gross_subtotal,
)

RULES = {
    RuleSet.FULL: FULL_RULES,
    RuleSet.BASIC: BASIC_RULES,
}


def derive_quote_line(
    values: Mapping[str, Any],
    signal: Optional[EditSignal] = None,
    rule_set: RuleSet = RuleSet.FULL,
) -> DerivationResult:
    """
    Recompute every derived field of a quote line in one synchronous pass.

    Args:
        values: Field mapping (snake_case names). Not mutated.
        signal: EditSignal for this pass; None means no pair member was edited.
        rule_set: RuleSet.FULL (default) or RuleSet.BASIC.

    Returns:
        DerivationResult with a new mapping. Fields that were not rewritten
        keep their original value (including None).
    """
    signal = signal or NO_EDIT
    state = _LineState(values)
    for rule in RULES[RuleSet.parse(rule_set)]:
        rule(state, signal)
    return DerivationResult(state.values, state.changed)


def reconcile_initial_load(values: Mapping[str, Any], rule_set: RuleSet = RuleSet.FULL) -> DerivationResult:
    """Run the one-time reconciliation pass for a freshly loaded persisted line."""
    return derive_quote_line(values, INITIAL_LOAD, rule_set)
