"""Scripted short replies: ticks, address acknowledgements and silence remarks."""

import random
from typing import Optional, Sequence

TICKS: tuple[str, ...] = (
    "L",
    "lol",
    "oh?",
    "I'm in",
    "bet",
    "fr",
    "bruh",
    "real",
    "ayyy",
    "sheesh",
)

ACKNOWLEDGEMENTS: tuple[str, ...] = (
    "yeah?",
    "what's up?",
    "I'm here.",
    "sup",
    "you rang?",
)

SILENCE_REMARKS: tuple[str, ...] = (
    "Did you know octopuses have three hearts?",
    "Why do flamingos stand on one leg?",
    "What's heavier, a ton of bricks or a ton of feathers?",
    "Do fish ever get thirsty?",
    "Why don't spiders stick to their own webs?",
    "How many holes does a straw have?",
    "Is cereal a soup?",
    "Why do we park in driveways and drive on parkways?",
    "Why is it called a building if it's already built?",
    "Why do round pizzas come in square boxes?",
    "What color is a mirror?",
    "Can you cry underwater?",
    "Why isn't the number 11 pronounced onety-one?",
    "If poison expires, is it more poisonous or less poisonous?",
)


def pick(phrases: Sequence[str], rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(phrases)
