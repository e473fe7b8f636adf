"""Consistency Critic.

Checks a revised quote against the quote it replaces: which lines were
added, removed or changed, and whether the price moved the way the
customer's change request implies. Findings are advisory warnings and
never block delivery.
"""

from typing import Dict, List, Tuple

import structlog

from models.quote import Quote
from models.validation import DeltaChange, DeltaValidation
from services.pricing_engine import normalize_item_name

logger = structlog.get_logger()


INTENT_ADD = "add"
INTENT_REMOVE = "remove"
INTENT_MODIFY = "modify"
INTENT_NONE = "none"

ADD_KEYWORDS = ("lägg till", "även", "också", "plus", "inkludera", "komplettera med")
REMOVE_KEYWORDS = ("ta bort", "utan", "skippa", "exkludera", "ta inte med", "stryk")
MODIFY_KEYWORDS = ("ändra", "byt", "istället", "premium", "standard", "budget")

UNEXPLAINED_JUMP_PERCENT = 50.0
EXPECTED_CHANGE_FACTOR = 2.0

# Minimum word length for matching a line by one of its words
MIN_MATCH_WORD = 5

CATEGORY_WORK = "workItem"
CATEGORY_MATERIAL = "material"
CATEGORY_EQUIPMENT = "equipment"


def detect_intent(message: str) -> str:
    """Classify a change request as add, remove, modify or none."""
    text = normalize_item_name(message)
    padded = f" {text} "

    def found(keywords) -> bool:
        return any(f" {kw} " in padded for kw in keywords)

    adding = found(ADD_KEYWORDS)
    removing = found(REMOVE_KEYWORDS)
    modifying = found(MODIFY_KEYWORDS)

    if removing and not adding:
        return INTENT_REMOVE
    if adding and not removing:
        return INTENT_ADD
    if modifying or (adding and removing):
        return INTENT_MODIFY
    return INTENT_NONE


def _lines(quote: Quote) -> List[Tuple[str, str, float]]:
    lines = [(CATEGORY_WORK, item.name, item.subtotal) for item in quote.work_items]
    lines += [(CATEGORY_MATERIAL, m.name, m.subtotal) for m in quote.materials]
    lines += [(CATEGORY_EQUIPMENT, e.name, e.subtotal) for e in quote.equipment_lines]
    return lines


def common_prefix_length(a: str, b: str) -> int:
    """Number of leading characters two words share."""
    length = 0
    for left, right in zip(a, b):
        if left != right:
            break
        length += 1
    return length


def _words_match(a: str, b: str) -> bool:
    """Same stem, allowing Swedish definite suffixes and compounds ("golvvärmen", "golvvärmematta")."""
    if len(a) < MIN_MATCH_WORD or len(b) < MIN_MATCH_WORD:
        return False
    common = common_prefix_length(a, b)
    return common >= MIN_MATCH_WORD and common >= min(len(a), len(b)) - 2


def _mentioned(message_words: List[str], message_text: str, name: str) -> bool:
    normalized = normalize_item_name(name)
    if normalized and normalized in message_text:
        return True
    return any(
        _words_match(word, msg_word)
        for word in normalized.split()
        for msg_word in message_words
    )


def extract_mentioned_items(message: str, previous: Quote) -> List[DeltaChange]:
    """Lines of the previous quote the message refers to, by name."""
    text = normalize_item_name(message)
    words = text.split()
    return [
        DeltaChange(type=INTENT_NONE, category=category, item_name=name, old_value=subtotal)
        for category, name, subtotal in _lines(previous)
        if _mentioned(words, text, name)
    ]


def detect_changes(previous: Quote, new: Quote) -> List[DeltaChange]:
    """Lines added, removed or re-priced between two quotes."""
    def index(quote: Quote) -> Dict[Tuple[str, str], Tuple[str, float]]:
        return {
            (category, normalize_item_name(name)): (name, subtotal)
            for category, name, subtotal in _lines(quote)
        }

    old_lines = index(previous)
    new_lines = index(new)
    changes: List[DeltaChange] = []

    for key, (name, subtotal) in old_lines.items():
        if key not in new_lines:
            changes.append(DeltaChange(type=INTENT_REMOVE, category=key[0], item_name=name, old_value=subtotal))
        elif abs(new_lines[key][1] - subtotal) > 0.01:
            changes.append(DeltaChange(
                type=INTENT_MODIFY, category=key[0], item_name=name,
                old_value=subtotal, new_value=new_lines[key][1]
            ))
    for key, (name, subtotal) in new_lines.items():
        if key not in old_lines:
            changes.append(DeltaChange(type=INTENT_ADD, category=key[0], item_name=name, new_value=subtotal))

    return changes


def check_consistency(previous: Quote, new: Quote, message: str) -> DeltaValidation:
    """Check that a revision's price change matches the requested change.

    Args:
        previous: Quote being revised (read-only)
        new: Revised quote
        message: Customer's change request

    Returns:
        DeltaValidation with advisory consistency warnings
    """
    prev_total = previous.summary.total_with_vat
    new_total = new.summary.total_with_vat
    price_change = round(new_total - prev_total, 2)
    percent = abs(price_change) / prev_total * 100 if prev_total > 0 else 0.0

    intent = detect_intent(message)
    changes = detect_changes(previous, new)
    warnings: List[str] = []

    if intent == INTENT_ADD and price_change < 0:
        warnings.append(
            f"Priset sjönk från {prev_total:,.0f} kr till {new_total:,.0f} kr "
            f"trots att arbete skulle läggas till"
        )
    if intent == INTENT_REMOVE and price_change >= 0:
        warnings.append(
            f"Priset sjönk inte ({prev_total:,.0f} kr till {new_total:,.0f} kr) "
            f"trots att arbete skulle tas bort"
        )
    if intent == INTENT_NONE and percent > UNEXPLAINED_JUMP_PERCENT:
        warnings.append(
            f"Priset ändrades med {percent:.0f}% ({prev_total:,.0f} kr till {new_total:,.0f} kr) "
            f"utan tydlig anledning"
        )

    if intent == INTENT_REMOVE:
        mentioned = extract_mentioned_items(message, previous)
        expected = -sum(item.old_value or 0.0 for item in mentioned)
        actual = new.summary.total_before_vat - previous.summary.total_before_vat
        if expected and abs(actual) > EXPECTED_CHANGE_FACTOR * abs(expected):
            warnings.append(
                f"Prisändringen {actual:,.0f} kr exkl. moms är mer än dubbelt så stor som "
                f"värdet av de borttagna raderna ({expected:,.0f} kr)"
            )

    if warnings:
        logger.warning(
            "quote_revision_inconsistent",
            intent=intent,
            price_change=price_change,
            warnings=len(warnings)
        )

    return DeltaValidation(
        valid=not warnings,
        intent=intent,
        consistency_warnings=warnings,
        price_change=price_change,
        price_change_percent=round(percent, 1),
        changes=changes,
    )
