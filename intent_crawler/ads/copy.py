"""Deterministic ad copy and targeting derived from an intent verdict."""

from __future__ import annotations

from typing import Any, Iterable

from intent_crawler.contract import IntentVerdict, Urgency

FALLBACK_HEADLINE = "The Solution You've Been Looking For"

DEFAULT_PRODUCT_IMAGE = "https://example.com/images/default-product.jpg"

PRODUCT_IMAGES: dict[str, str] = {
    "Smartphone X1": "https://example.com/images/smartphone-x1.jpg",
    "Wireless Earbuds Pro": "https://example.com/images/earbuds-pro.jpg",
    "Gaming Laptop Z5": "https://example.com/images/laptop-z5.jpg",
}

# Substring match against lower-cased topics, first hit wins.
TOPIC_INTERESTS: dict[str, str] = {
    "smartphones": "6003015842842",
    "earbuds": "6003139266461",
    "audio": "6003139266461",
    "laptops": "6002970401671",
    "gaming": "6003010455011",
    "electronics": "6002964301001",
}

PRODUCT_INTERESTS: dict[str, str] = {
    "Smartphone X1": "6003015842842",
    "Wireless Earbuds Pro": "6003139266461",
    "Gaming Laptop Z5": "6002970401671",
}

AGE_MIN = 18
AGE_MAX = 65
COUNTRIES = ["US"]


def select_headline(verdict: IntentVerdict) -> str:
    if verdict.urgency is Urgency.HIGH:
        return f"Solve Your {verdict.first_topic or 'Tech'} Problem Today!"
    if verdict.first_product:
        return f"Discover the Perfect {verdict.first_product}"
    return FALLBACK_HEADLINE


def build_body(verdict: IntentVerdict) -> str:
    body = f"We noticed you're having an issue with {verdict.first_topic or 'your device'}. "
    if verdict.first_product:
        body += f"Our {verdict.first_product} is designed to solve exactly this problem. "
    body += "Check out our solutions that have helped thousands of customers like you!"
    return body


def product_image_url(product: str | None) -> str:
    return PRODUCT_IMAGES.get(product or "", DEFAULT_PRODUCT_IMAGE)


def map_topics_to_interests(topics: Iterable[str]) -> list[dict[str, str]]:
    interests: list[dict[str, str]] = []
    for topic in topics:
        lowered = topic.lower()
        for keyword, interest_id in TOPIC_INTERESTS.items():
            if keyword in lowered:
                interests.append({"id": interest_id, "name": keyword})
                break
    return interests


def map_products_to_interests(products: Iterable[str]) -> list[dict[str, str]]:
    return [
        {"id": PRODUCT_INTERESTS[product], "name": product}
        for product in products
        if product in PRODUCT_INTERESTS
    ]


def build_targeting(verdict: IntentVerdict) -> dict[str, Any]:
    return {
        "age_min": AGE_MIN,
        "age_max": AGE_MAX,
        "genders": [1, 2],
        "geo_locations": {"countries": list(COUNTRIES)},
        "interests": map_topics_to_interests(verdict.topics),
        "flexible_spec": [{"interests": map_products_to_interests(verdict.relevant_products)}],
    }


def format_score(score: float) -> str:
    return str(int(score)) if float(score).is_integer() else f"{score:g}"
