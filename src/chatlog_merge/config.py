"""Engine configuration for chat export parsing."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from chat.timestamps import DATE_ORDER_SAMPLE_SIZE

from .parsers.senders import MAX_SENDER_LENGTH

BEST_EFFORT_OMITTED_ENV = "CHATLOG_MERGE_BEST_EFFORT_OMITTED"

TRUTHY_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EngineConfig:
    """Settings shared by every source parsed in one run.

    Parameters
    ----------
    best_effort_omitted_media:
        Guess a media file for "omitted" placeholders that name no file.
        Off by default: the guess has no reliable basis.
    date_order_sample_size:
        Number of leading records that vote on the date order.
    max_sender_length:
        Longest accepted sender name; longer candidates mark the record as a
        system message.
    """

    best_effort_omitted_media: bool = False
    date_order_sample_size: int = DATE_ORDER_SAMPLE_SIZE
    max_sender_length: int = MAX_SENDER_LENGTH

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a config, reading the omitted-media flag from the environment."""

        env = os.environ if environ is None else environ
        raw = env.get(BEST_EFFORT_OMITTED_ENV, "")
        return cls(best_effort_omitted_media=raw.strip().lower() in TRUTHY_VALUES)


DEFAULT_CONFIG = EngineConfig()
