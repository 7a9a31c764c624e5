"""Canned answers and topic patterns for high-frequency pet care questions."""

import re
from typing import Optional

# Substring key -> answer; checked before any cache or model lookup
CANNED_ANSWERS: dict[str, str] = {
    "vaccination schedule": (
        "Puppies need vaccines at 6-8 weeks, 10-12 weeks, and 14-16 weeks, "
        "followed by boosters at one year and then every one to three years "
        "depending on the vaccine. Kittens follow a similar schedule. Your vet "
        "can tailor the plan to your pet's lifestyle."
    ),
    "emergency signs": (
        "Seek immediate vet care for: difficulty breathing, seizures, "
        "unconsciousness, heavy bleeding, a swollen or hard belly, repeated "
        "vomiting, inability to urinate, or suspected poisoning. If in doubt, "
        "call your nearest emergency clinic right away."
    ),
    "toxic foods": (
        "Never feed dogs: chocolate, grapes, raisins, onions, garlic, xylitol "
        "(a sweetener in gum and some peanut butters), macadamia nuts, alcohol, "
        "or caffeine. Contact a vet immediately if your pet eats any of these."
    ),
}

# Ordered (pattern, category) table; first match wins. Patterns anchor on
# word starts so "screenshot" or "fix my dog's diet" stay unclassified.
TOPIC_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"\bvaccin|\bshots?\b|\bimmuni[sz]", re.IGNORECASE), "vaccination"),
    (re.compile(r"\bemergency\b|\burgent\b|\basap\b", re.IGNORECASE), "emergency"),
    (re.compile(r"\bpoison|\btoxic|\bdangerous\b.*\bfoods?\b", re.IGNORECASE), "toxic"),
    (re.compile(r"\bfleas?\b|\bticks?\b|\bparasit", re.IGNORECASE), "parasites"),
    (re.compile(r"\bspay|\bneuter|\bfixed\b", re.IGNORECASE), "spay-neuter"),
)


def classify_topic(text: str) -> Optional[str]:
    """Return the first topic category whose pattern matches ``text``."""
    for pattern, category in TOPIC_PATTERNS:
        if pattern.search(text):
            return category
    return None
