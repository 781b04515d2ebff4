"""Model naming for engines.

Inside an isolated engine the namespace is dropped from form keys and route
keys (`post[title]`, `posts`); shared engines keep it (`bukkits_post`).
"""

import re
from typing import Optional


_UNCOUNTABLE = {"equipment", "information", "rice", "money", "species", "series", "fish", "sheep", "news"}
_IRREGULAR = {"person": "people", "man": "men", "child": "children", "mouse": "mice"}


def underscore(word: str) -> str:
    word = word.replace("::", "/").replace(".", "/")
    word = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", word)
    word = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", word)
    return word.replace("-", "_").lower()


def pluralize(word: str) -> str:
    lower = word.lower()
    if not word or lower in _UNCOUNTABLE:
        return word
    if lower in _IRREGULAR:
        return _IRREGULAR[lower]
    if re.search(r"[^aeiou]y$", lower):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", lower):
        return word + "es"
    return word + "s"


def singularize(word: str) -> str:
    lower = word.lower()
    if lower in _UNCOUNTABLE:
        return word
    for singular, plural in _IRREGULAR.items():
        if lower == plural:
            return singular
    if lower.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if re.search(r"(s|x|z|ch|sh)es$", lower):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word


class ModelName:
    def __init__(self, class_name: str, namespace: Optional[str] = None, isolated: bool = False):
        self.name = class_name
        self.namespace = namespace
        self.isolated = isolated

        self.element = underscore(class_name.split(".")[-1])
        self.singular = f"{namespace}_{self.element}" if namespace else self.element
        self.plural = pluralize(self.singular)
        self.collection = f"{namespace}/{pluralize(self.element)}" if namespace else pluralize(self.element)

        if isolated:
            self.param_key = self.element
            self.route_key = pluralize(self.element)
        else:
            self.param_key = self.singular
            self.route_key = self.plural
        self.singular_route_key = singularize(self.route_key)
        if self.route_key == self.singular_route_key:
            self.route_key = f"{self.route_key}_index"

    def table_name(self, prefix: str = "") -> str:
        return f"{prefix}{pluralize(self.element)}"

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<ModelName {self.name} param_key={self.param_key} route_key={self.route_key}>"
