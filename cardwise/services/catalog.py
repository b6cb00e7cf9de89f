"""Catalog seeding and local account setup (users, cards, program links)."""

from __future__ import annotations

import logging

from cardwise.config import Config
from cardwise.database.models import Card, CardRewardProgram, Category, RewardProgram, User
from cardwise.database.repository import Repository
from cardwise.errors import CardNotFoundError, UserNotFoundError, ValidationError

logger = logging.getLogger(__name__)


def seed_catalogs(repo: Repository, config: Config) -> tuple[int, int]:
    """Load categories and reward programs from config. Idempotent.

    Returns:
        (category count, reward program count)
    """
    categories = [
        Category(
            code=c["code"], name=c["name"], description=c.get("description"),
            icon=c.get("icon"), color=c.get("color"),
        )
        for c in config.categories
    ]
    programs = [
        RewardProgram(
            name=p["name"], code=p.get("code"), description=p.get("description"),
            website=p.get("website"), logo_path=p.get("logo_path"),
        )
        for p in config.reward_programs
    ]
    n_categories = repo.seed_categories(categories)
    n_programs = repo.seed_reward_programs(programs)
    logger.info("Seeded %d categories and %d reward programs", n_categories, n_programs)
    return n_categories, n_programs


def add_user(repo: Repository, name: str, email: str) -> User:
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValidationError(f"Invalid email: {email!r}")
    if repo.get_user_by_email(email) is not None:
        raise ValidationError(f"User already exists: {email}")
    return repo.insert_user(User(name=name, email=email))


def add_card(
    repo: Repository,
    user_id: str,
    name: str,
    bank: str | None = None,
    last_digits: str | None = None,
    conversion_rate: float = 1.0,
    annual_fee: int | None = None,
    tier: str | None = None,
    config: Config | None = None,
) -> Card:
    if repo.get_user(user_id) is None:
        raise UserNotFoundError(user_id)
    if last_digits is not None and not (len(last_digits) == 4 and last_digits.isdigit()):
        raise ValidationError("last_digits must be exactly 4 digits")
    if conversion_rate < 0:
        raise ValidationError("conversion_rate must not be negative")
    if tier and config is not None and tier not in config.bonus_table:
        raise ValidationError(f"Unknown card tier: {tier}")
    return repo.insert_card(Card(
        user_id=user_id, name=name, bank=bank, last_digits=last_digits,
        conversion_rate=conversion_rate, annual_fee=annual_fee, tier=tier,
    ))


def link_program(
    repo: Repository,
    card_id: str,
    program_code: str,
    conversion_rate: float = 1.0,
    primary: bool = True,
) -> CardRewardProgram:
    if repo.get_card(card_id) is None:
        raise CardNotFoundError(card_id)
    program = repo.get_reward_program_by_code(program_code.upper())
    if program is None:
        raise ValidationError(f"Unknown reward program: {program_code}")
    return repo.link_reward_program(CardRewardProgram(
        card_id=card_id, reward_program_id=program.id,
        conversion_rate=conversion_rate, is_primary=primary,
    ))
