from __future__ import annotations

import random


LETTER_SETS: dict[str, tuple[str, ...]] = {
    # 18 common letters
    "easy": tuple("ABCDEFGHILMNOPRSTW"),
    "hard": tuple("ABCDEFGHIJKLMNOPQRSTUVWXYZ"),
}

CATEGORIES: tuple[str, ...] = (
    "Animals",
    "Foods",
    "Countries",
    "Movies",
    "Sports",
    "Colors",
    "Professions",
    "Things in a Kitchen",
    "School Subjects",
    "Board Games",
    "Fruits",
    "Vegetables",
    "Car Brands",
    "TV Shows",
    "Books",
    "Things You Wear",
    "Musical Instruments",
    "Things in Nature",
    "Superheroes",
    "Pizza Toppings",
    "Things in Space",
    "Board Game Mechanics",
    "Modes of Transportation",
    "Desserts",
    "Languages",
    "Hobbies",
    "Flowers",
)


def letters_for(difficulty: str) -> tuple[str, ...]:
    return LETTER_SETS.get(difficulty, LETTER_SETS["easy"])


def pick_category(used: list[str], current: str = "") -> str:
    """Pick a category not in ``used`` and different from ``current``.

    Mutates ``used``: it is emptied once every category has been played, and
    the returned category is appended to it.
    """
    if len(used) >= len(CATEGORIES):
        used.clear()

    pool = [c for c in CATEGORIES if c not in used and c != current]
    if not pool:
        # Only the current category was left unplayed.
        used.clear()
        pool = [c for c in CATEGORIES if c != current]

    category = random.choice(pool)
    used.append(category)
    return category
