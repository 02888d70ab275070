from typing import Any, Iterator


def iter_questions(definition: dict | None) -> Iterator[dict[str, Any]]:
    """
    Yield question elements of a survey document.

    Paged documents ({"pages": [{"elements": [...]}]}) take precedence over
    a flat top-level "elements" list.
    """
    if not isinstance(definition, dict):
        return

    pages = definition.get("pages")
    if isinstance(pages, list) and pages:
        for page in pages:
            if not isinstance(page, dict):
                continue
            elements = page.get("elements")
            if isinstance(elements, list):
                for element in elements:
                    if isinstance(element, dict):
                        yield element
        return

    elements = definition.get("elements")
    if isinstance(elements, list):
        for element in elements:
            if isinstance(element, dict):
                yield element


def count_questions(definition: dict | None) -> int:
    return sum(1 for _ in iter_questions(definition))
