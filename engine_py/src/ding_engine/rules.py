"""
Game rule configuration and validation.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEALER_RULE_LAST_TRICK_WINNER, DEALER_RULE_ROTATE,
    FOLD_PENALTY_INCREASE, FOLD_PENALTY_THRESHOLD, MAX_PLAYERS, MIN_PLAYERS,
)


class RuleConfig(BaseModel):
    """Configuration for house rules and room limits."""

    starting_score: int = Field(
        default=20,
        ge=5,
        le=50,
        description="Score every player starts a game with"
    )
    fold_threshold: int = Field(
        default=5,
        ge=1,
        description="Players below this score pay a penalty when folding"
    )
    fold_penalty: Literal['threshold', 'increase'] = Field(
        default=FOLD_PENALTY_THRESHOLD,
        description="'threshold' resets the score to the threshold, 'increase' adds one"
    )
    decks: int = Field(
        default=1,
        ge=1,
        le=2,
        description="Number of 52-card decks in the shoe"
    )
    hyperrealistic: bool = Field(
        default=False,
        description="Disables forced suit-following"
    )
    dealer_rule: Literal['rotate', 'last_trick_winner'] = Field(
        default=DEALER_RULE_ROTATE,
        description="How the next dealer is chosen"
    )
    max_players: int = Field(
        default=MAX_PLAYERS,
        ge=MIN_PLAYERS,
        le=MAX_PLAYERS,
        description="Maximum number of seats in a room"
    )
    min_players: int = Field(
        default=MIN_PLAYERS,
        ge=MIN_PLAYERS,
        le=MAX_PLAYERS,
        description="Minimum number of players required to start"
    )

    @field_validator('fold_penalty', mode='before')
    @classmethod
    def normalize_fold_penalty(cls, v):
        """Accept 'reset' as the older name of the threshold penalty."""
        if v == 'reset':
            return FOLD_PENALTY_THRESHOLD
        return v

    @field_validator('fold_threshold')
    @classmethod
    def validate_fold_threshold(cls, v, info):
        """Fold threshold can never exceed the starting score."""
        starting_score = info.data.get('starting_score', 20)
        if v > starting_score:
            raise ValueError(f'fold_threshold ({v}) must be <= starting_score ({starting_score})')
        return v

    def get_shoe_size(self) -> int:
        """Get the total number of cards in the shoe."""
        return 52 * self.decks

    def to_record(self) -> Dict[str, Any]:
        return {
            "startingScore": self.starting_score,
            "foldThreshold": self.fold_threshold,
            "foldPenalty": self.fold_penalty,
            "decks": self.decks,
            "hyperrealistic": self.hyperrealistic,
            "dealerRule": self.dealer_rule,
        }

    @classmethod
    def from_record(cls, data: Optional[Dict[str, Any]], base: Optional['RuleConfig'] = None) -> 'RuleConfig':
        """Build from a camelCase record; missing keys keep the base values."""
        raw = (base or default_rules).model_dump()
        data = data or {}
        keys = {
            "startingScore": "starting_score",
            "foldThreshold": "fold_threshold",
            "foldPenalty": "fold_penalty",
            "decks": "decks",
            "hyperrealistic": "hyperrealistic",
            "dealerRule": "dealer_rule",
        }
        for record_key, field_name in keys.items():
            if record_key in data and data[record_key] is not None:
                raw[field_name] = data[record_key]
        return clamp_settings(raw)


def _as_int(value, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def clamp_settings(raw: Dict[str, Any]) -> RuleConfig:
    """
    Coerce a partial settings dict into a valid RuleConfig.

    Out-of-range numbers are clamped instead of rejected and unknown
    penalty or dealer-rule values fall back to the defaults.
    """
    merged = default_rules.model_dump()
    merged.update({k: v for k, v in raw.items() if v is not None})

    starting_score = min(50, max(5, _as_int(merged['starting_score'], 20)))
    fold_threshold = min(starting_score, max(1, _as_int(merged['fold_threshold'], 5)))
    decks = min(2, max(1, _as_int(merged['decks'], 1)))

    fold_penalty = merged.get('fold_penalty')
    if fold_penalty == 'reset':
        fold_penalty = FOLD_PENALTY_THRESHOLD
    if fold_penalty not in (FOLD_PENALTY_THRESHOLD, FOLD_PENALTY_INCREASE):
        fold_penalty = FOLD_PENALTY_THRESHOLD

    dealer_rule = merged.get('dealer_rule')
    if dealer_rule not in (DEALER_RULE_ROTATE, DEALER_RULE_LAST_TRICK_WINNER):
        dealer_rule = DEALER_RULE_ROTATE

    max_players = min(MAX_PLAYERS, max(MIN_PLAYERS, _as_int(merged['max_players'], MAX_PLAYERS)))
    min_players = min(max_players, max(MIN_PLAYERS, _as_int(merged['min_players'], MIN_PLAYERS)))

    return RuleConfig(
        starting_score=starting_score,
        fold_threshold=fold_threshold,
        fold_penalty=fold_penalty,
        decks=decks,
        hyperrealistic=bool(merged.get('hyperrealistic')),
        dealer_rule=dealer_rule,
        max_players=max_players,
        min_players=min_players,
    )


# Default configuration instance
default_rules = RuleConfig()


def create_rules(**overrides) -> RuleConfig:
    """Create a RuleConfig with optional overrides."""
    config_dict = default_rules.model_dump()
    config_dict.update(overrides)
    return RuleConfig(**config_dict)
