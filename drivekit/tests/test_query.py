import pytest

from drivekit.exceptions import ConfigurationError, ParsingError
from drivekit.query import BackendKind, Filters, Setters, Values


def test_filters_numbered_placeholders():
    query = Filters("id").add("AND age").add("OR name").to_query(BackendKind.POSTGRES)
    assert query == "id = $1 AND age = $2 OR name = $3"


def test_filters_positional_placeholders():
    query = Filters("id").add("AND age").add("OR name").to_query(BackendKind.MYSQL)
    assert query == "id = ? AND age = ? OR name = ?"


def test_filters_sqlite_placeholders():
    assert Filters("id").add("AND age").to_query(BackendKind.SQLITE) == "id = ?1 AND age = ?2"


def test_grouped_base_filter():
    query = Filters("asset_path OR custom_path").add("AND asset_type").to_query(BackendKind.POSTGRES)
    assert query == "(asset_path = $1 OR custom_path = $2) AND asset_type = $3"


def test_grouped_suffix_filter_with_offset():
    query = Filters("asset_type", 3).add("AND (asset_path OR custom_path)").to_query(BackendKind.SQLITE)
    assert query == "asset_type = ?3 AND (asset_path = ?4 OR custom_path = ?5)"



@pytest.mark.parametrize("base, fragment", [
    ("", None),
    ("id", "age"),
    ("id", "AND (age OR name"),
    ("AND id", None),
    ("id", "AND age name"),
])
def test_malformed_filters(base, fragment):
    filters = Filters(base)
    if fragment is not None:
        filters.add(fragment)
    with pytest.raises(ParsingError):
        filters.to_query(BackendKind.POSTGRES)


def test_values():
    assert Values(3).to_query(BackendKind.POSTGRES) == "VALUES($1, $2, $3)"
    assert Values(3).to_query(BackendKind.MYSQL) == "VALUES(?, ?, ?)"
    assert Values(2, offset=4).to_query(BackendKind.SQLITE) == "VALUES(?4, ?5)"


def test_setters():
    assert Setters("public").add("custom_path").to_query(BackendKind.POSTGRES) == "public = $1, custom_path = $2"
    assert Setters("public", 2).to_query(BackendKind.MYSQL) == "public = ?"


def test_backend_from_name():
    assert BackendKind.from_name("PostgreSQL") is BackendKind.POSTGRES
    assert BackendKind.from_name("mariadb") is BackendKind.MYSQL
    assert BackendKind.from_name("SQLite") is BackendKind.SQLITE


def test_unknown_backend_name():
    with pytest.raises(ConfigurationError, match="unable to parse backend name oracle"):
        BackendKind.from_name("oracle")


def test_bind_numbered():
    stmt, values = BackendKind.POSTGRES.bind("SELECT * FROM users WHERE id = $1 AND pid = $2", [7, "abc"])
    assert str(stmt) == "SELECT * FROM users WHERE id = :p1 AND pid = :p2"
    assert values == {"p1": 7, "p2": "abc"}


def test_bind_positional():
    stmt, values = BackendKind.MYSQL.bind("UPDATE assets SET public = ? WHERE id = ?", [True, 3])
    assert str(stmt) == "UPDATE assets SET public = :p1 WHERE id = :p2"
    assert values == {"p1": True, "p2": 3}
