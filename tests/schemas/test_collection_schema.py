"""Tests for the collection schema."""
import pytest
from pydantic import ValidationError

from conftest import collection_row
from schemas.collection import (
    MAX_COLLECTION_NAME_LENGTH,
    Collection,
    normalize_collection_name,
)


class TestNormalizeCollectionName:
    """Tests for normalize_collection_name."""

    def test__normalize_collection_name__strips(self) -> None:
        """Test that surrounding whitespace is removed."""
        assert normalize_collection_name("  Reading  ") == "Reading"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test__normalize_collection_name__blank_rejected(self, name: str | None) -> None:
        """Test that blank names raise."""
        with pytest.raises(ValueError, match="Collection name cannot be empty"):
            normalize_collection_name(name)

    def test__normalize_collection_name__max_length(self) -> None:
        """Test the length limit."""
        assert normalize_collection_name("a" * MAX_COLLECTION_NAME_LENGTH)
        with pytest.raises(ValueError, match="exceeds maximum length"):
            normalize_collection_name("a" * (MAX_COLLECTION_NAME_LENGTH + 1))


class TestCollectionModel:
    """Tests for the Collection model."""

    def test__model_validate__rest_row(self) -> None:
        """Test that a REST row parses and extra columns are ignored."""
        collection = Collection.model_validate(collection_row(7, name="Work", extra="x"))

        assert collection.id == "7"
        assert collection.name == "Work"
        assert collection.user_id == "user-1"
        assert collection.created_at.tzinfo is not None

    def test__model_validate__missing_name_raises(self) -> None:
        """Test that rows without a name are rejected."""
        row = collection_row("c1")
        del row["name"]

        with pytest.raises(ValidationError):
            Collection.model_validate(row)
