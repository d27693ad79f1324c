"""Exception types shared across the memory pipeline."""


class KintsuError(Exception):
    """Base class for all kintsu errors."""


class LLMGatewayError(KintsuError):
    """The LLM call failed or returned output that does not match the schema."""


class EmbeddingError(KintsuError):
    """The embedding call failed or returned an unusable vector."""


class FactNotFoundError(KintsuError):
    """No fact with the given id exists for the owner."""

    def __init__(self, fact_id: str, owner_id: str | None = None) -> None:
        self.fact_id = fact_id
        self.owner_id = owner_id
        where = f" for owner {owner_id}" if owner_id else ""
        super().__init__(f"Fact {fact_id} not found{where}")
