from __future__ import annotations

import hashlib
import random


RANKS = "23456789TJQKA"
SUITS = "shdc"


def build_deck() -> list[str]:
    return [f"{rank}{suit}" for suit in SUITS for rank in RANKS]


def build_shuffled_deck(seed: int) -> list[str]:
    # plain Mersenne Twister, not meant to resist a motivated cheater
    deck = build_deck()
    rng = random.Random(seed)
    rng.shuffle(deck)
    return deck


def derive_seed(base_seed: int, round_number: int, label: str) -> int:
    raw = f"{base_seed}:{round_number}:{label}".encode("utf-8")
    digest = hashlib.sha256(raw).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)
