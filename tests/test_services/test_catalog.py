"""Tests for catalog seeding and account setup."""

import pytest

from cardwise.errors import CardNotFoundError, UserNotFoundError, ValidationError
from cardwise.services.catalog import add_card, add_user, link_program, seed_catalogs


class TestSeedCatalogs:
    def test_counts(self, repo, config):
        assert seed_catalogs(repo, config) == (18, 8)

    def test_reseed_updates_in_place(self, seeded_repo, config):
        before = seeded_repo.get_category_by_code("FOOD").id
        seed_catalogs(seeded_repo, config)
        assert seeded_repo.get_category_by_code("FOOD").id == before


class TestAddUser:
    def test_normalizes_email(self, seeded_repo):
        user = add_user(seeded_repo, "Bruno", "  Bruno@Example.COM ")
        assert user.email == "bruno@example.com"

    def test_rejects_duplicate(self, seeded_repo, user):
        with pytest.raises(ValidationError, match="already exists"):
            add_user(seeded_repo, "Ana", "ANA@example.com")

    def test_rejects_bad_email(self, seeded_repo):
        with pytest.raises(ValidationError):
            add_user(seeded_repo, "X", "not-an-email")


class TestAddCard:
    def test_creates_card(self, seeded_repo, user, config):
        card = add_card(
            seeded_repo, user.id, "Itaú Black", bank="Itaú", last_digits="9876",
            conversion_rate=2.0, annual_fee=89900, tier="black", config=config,
        )
        loaded = seeded_repo.get_card(card.id)
        assert loaded.tier == "black"
        assert loaded.annual_fee == 89900

    def test_unknown_user(self, seeded_repo):
        with pytest.raises(UserNotFoundError):
            add_card(seeded_repo, "nobody", "Card")

    @pytest.mark.parametrize("digits", ["123", "12345", "12a4"])
    def test_last_digits(self, seeded_repo, user, digits):
        with pytest.raises(ValidationError):
            add_card(seeded_repo, user.id, "Card", last_digits=digits)

    def test_negative_rate(self, seeded_repo, user):
        with pytest.raises(ValidationError):
            add_card(seeded_repo, user.id, "Card", conversion_rate=-1)

    def test_unknown_tier(self, seeded_repo, user, config):
        with pytest.raises(ValidationError, match="tier"):
            add_card(seeded_repo, user.id, "Card", tier="diamond", config=config)


class TestLinkProgram:
    def test_links_by_code(self, seeded_repo, card):
        link = link_program(seeded_repo, card.id, "smiles", conversion_rate=0.5)
        assert link.is_primary
        assert seeded_repo.get_card_reward_programs(card.id)[0].conversion_rate == 0.5

    def test_unknown_card(self, seeded_repo):
        with pytest.raises(CardNotFoundError):
            link_program(seeded_repo, "nope", "SMILES")

    def test_unknown_program(self, seeded_repo, card):
        with pytest.raises(ValidationError):
            link_program(seeded_repo, card.id, "MILHASXYZ")
