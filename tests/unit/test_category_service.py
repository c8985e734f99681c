import pytest

from bookkeeper.domain.errors import CategoryNotFoundError, ValidationError
from bookkeeper.domain.models import Category
from bookkeeper.repositories.base import CategoryRepository
from bookkeeper.services.category_service import CategoryService, slugify


@pytest.fixture
def stored_categories(nested_taxonomy):
    return list(nested_taxonomy)


@pytest.fixture
def mock_repository(mocker, stored_categories) -> CategoryRepository:
    repository = mocker.Mock(spec=CategoryRepository)
    repository.get_all.return_value = stored_categories
    repository.save.side_effect = lambda category: category
    return repository


@pytest.fixture
def service(mock_repository) -> CategoryService:
    return CategoryService(mock_repository)


@pytest.mark.unit
class TestSlugify:

    @pytest.mark.parametrize("name,expected", [
        ("Bills & Utilities", "bills-utilities"),
        ("  Coffee & Tea ", "coffee-tea"),
        ("Software & Apps", "software-apps"),
        ("401k", "401k"),
    ])
    def test_slugify(self, name, expected):
        assert slugify(name) == expected

    def test_unusable_name_rejected(self):
        with pytest.raises(ValidationError):
            slugify("&&&")


@pytest.mark.unit
class TestCategoryService:

    def test_taxonomy_is_cached(self, service, mock_repository):
        service.get_taxonomy()
        service.get_taxonomy()

        assert mock_repository.get_all.call_count == 1

    def test_add_root_category(self, service, mock_repository):
        # Act
        category = service.add_category("Pets", color="#123456")

        # Assert
        assert category == Category("pets", "Pets", color="#123456")
        mock_repository.save.assert_called_once_with(category)

    def test_add_child_prefixes_parent_id(self, service):
        category = service.add_category("Pet Food", parent_id="food")

        assert category.id == "food-pet-food"
        assert category.parent_category_id == "food"

    def test_explicit_id(self, service):
        assert service.add_category("Gas", parent_id="utilities", category_id="gas").id == "gas"

    def test_add_invalidates_cache(self, service, mock_repository):
        # Arrange
        service.get_taxonomy()

        # Act
        service.add_category("Pets")
        service.get_taxonomy()

        # Assert
        assert mock_repository.get_all.call_count == 2

    def test_missing_parent_rejected(self, service, mock_repository):
        with pytest.raises(CategoryNotFoundError):
            service.add_category("Orphan", parent_id="nope")

        mock_repository.save.assert_not_called()

    def test_duplicate_id_rejected(self, service, mock_repository):
        with pytest.raises(ValidationError):
            service.add_category("Food")

        mock_repository.save.assert_not_called()

    def test_too_deep_rejected(self, service):
        with pytest.raises(ValidationError):
            service.add_category("Solar", parent_id="electricity")

    def test_delete_invalidates_cache(self, service, mock_repository):
        # Arrange
        mock_repository.delete.return_value = True
        service.get_taxonomy()

        # Act
        deleted = service.delete_category("food")
        service.get_taxonomy()

        # Assert
        assert deleted
        mock_repository.delete.assert_called_once_with("food")
        assert mock_repository.get_all.call_count == 2


@pytest.mark.unit
class TestSeedDefaults:

    def test_seed_creates_tree(self, mock_repository):
        # Arrange
        mock_repository.get_all.return_value = []
        service = CategoryService(mock_repository)
        config = {"categories": [
            {"name": "Housing", "color": "#8B5CF6", "children": ["Rent", "Mortgage"]},
        ]}

        # Act
        created = service.seed_defaults(config)

        # Assert
        assert [c.id for c in created] == ["housing", "housing-rent", "housing-mortgage"]
        assert all(c.color == "#8B5CF6" for c in created)
        assert mock_repository.save.call_count == 3

    def test_seed_skips_existing(self, mock_repository):
        mock_repository.get_all.return_value = [Category("housing", "Housing")]
        service = CategoryService(mock_repository)

        created = service.seed_defaults({"categories": [{"name": "Housing", "children": ["Rent"]}]})

        assert [c.id for c in created] == ["housing-rent"]

    def test_packaged_seed_ids(self, mock_repository, seed_categories):
        mock_repository.get_all.return_value = []
        service = CategoryService(mock_repository)

        created = service.seed_defaults()

        assert [c.id for c in created] == [c.id for c in seed_categories]
