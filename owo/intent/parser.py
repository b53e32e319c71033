"""Keyword intent detection for chat messages.

Pure functions only: nothing here touches the ledger, so a misread message
can at worst produce the wrong Intent, never a wrong balance.
"""

import re

from owo.models.schemas import BuyAirtime, CheckBalance, Intent, ShowHistory, Transfer, Unknown

_NUMBER = re.compile(r"(\d{1,3}(?:,\d{3})+|\d+)(\s*k\b)?")
_WORD_THOUSANDS = re.compile(r"\b(one|two|three|four|five|ten|twenty)\s+thousand\b")
_WORD_VALUES = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "ten": 10, "twenty": 20}

_TRANSFER = re.compile(r"\b(send|transfer|pay|give)\b")
_RECIPIENT = re.compile(r"\b(?:to|give|for)\s+([a-z][a-z0-9_]*)")
_AIRTIME = re.compile(r"\b(airtime|recharge|top ?up)\b")
# English, pidgin ("wetin be my balance") and yoruba ("kin ni balance")
_BALANCE = re.compile(r"\b(balance|how much|how many|remain|wetin be my balance|kin ni balance)\b")
_HISTORY = re.compile(r"\b(history|transactions?|statement)\b")


def parse_amount(text: str) -> int | None:
    """Pull the first amount out of a message: '5,000', '5000', '5k' or 'five thousand'."""
    s = text.lower()
    match = _NUMBER.search(s)
    if match:
        amount = int(match.group(1).replace(",", ""))
        if match.group(2):
            amount *= 1000
        if amount > 0:
            return amount

    words = _WORD_THOUSANDS.search(s)
    if words:
        return _WORD_VALUES[words.group(1)] * 1000
    return None


def parse_intent(text: str) -> Intent:
    s = text.lower().strip()

    if _TRANSFER.search(s):
        recipient = _RECIPIENT.search(s)
        return Transfer(
            amount=parse_amount(s),
            recipient=recipient.group(1) if recipient else None,
        )

    if _AIRTIME.search(s):
        return BuyAirtime(amount=parse_amount(s))

    if _BALANCE.search(s):
        return CheckBalance()

    if _HISTORY.search(s):
        return ShowHistory()

    return Unknown()
