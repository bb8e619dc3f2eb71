# Module: prompts
# License: MIT (Listing Studio project)
# Description: Prompt templates for listing text and mannequin image generation.
# Platform: Server
# Dependencies: none

"""
Prompt templates are plain functions over option dataclasses so they can be
tested without any provider call.
"""

from dataclasses import dataclass
from typing import Tuple

DEFAULT_GARMENT = "garment"

# Gender tags as sent by the client, French tags kept for older clients
GENDER_LABELS = {
    "femme": "female",
    "female": "female",
    "woman": "female",
    "homme": "male",
    "male": "male",
    "man": "male",
    "unisex": "unisex",
    "mixte": "unisex",
}


@dataclass(frozen=True)
class ListingPromptOptions:
    extra: str = ""
    language: str = "English"
    marketplace: str = "Vinted"
    currency: str = "€"
    hashtags: Tuple[int, int] = (10, 20)


@dataclass(frozen=True)
class MannequinPromptOptions:
    description: str = DEFAULT_GARMENT
    gender: str = ""
    background: str = "plain white studio background"


def build_listing_prompt(options: ListingPromptOptions) -> str:
    low, high = options.hashtags
    c = options.currency
    extra = options.extra.strip() or "none"
    return f"""\
You are an expert {options.marketplace} seller. From the attached photos, write a {options.marketplace} listing in {options.language}.

Rules:
- title entirely in lowercase
- detailed, clear, appealing and honest description
- mention material(s), size, cut/fit, colors, condition and any visible defects
- end the description with one line of relevant hashtags ({low}-{high} max)
- suggest a price formatted as: "xx{c} (range: aa–bb{c})"
- mannequin_prompt: a short visual description of the garment (type, color, material, logos, cut) for a studio photo

Return STRICT JSON with exactly these keys: title, description, price, mannequin_prompt.

Additional information from the seller (optional): {extra}
"""


def gender_label(gender: str) -> str:
    key = (gender or "").strip().lower()
    return GENDER_LABELS.get(key, key or "unisex")


def build_mannequin_prompt(options: MannequinPromptOptions) -> str:
    description = options.description.strip() or DEFAULT_GARMENT
    return f"""\
Studio product photo for a second-hand marketplace listing, photorealistic.
Show the garment from the reference photos worn by a {gender_label(options.gender)} mannequin.
The mannequin has NO FACE: the frame stops at the neck, no part of a face is visible.
Background: {options.background}, soft even lighting.

Strict fidelity to the reference photos:
- identical color, pattern, logos, prints, cut, length and details
- do not invent, remove or restyle anything
- keep visible wear or defects as they are

Garment: {description}
"""
