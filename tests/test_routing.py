import pytest

from sqlrest.core.errors import MethodNotAllowedError, RouteNotFoundError
from sqlrest.core.rest.routing import normalize_path, resolve


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/Person/12", ("/person/{id}", 12)),
        ("Person", ("/person", None)),
        ("/Person/", ("/person", None)),
        ("/person/12?x=1", ("/person/{id}", 12)),
        ("/person/abc", ("/person/abc", None)),
        ("/person/²", ("/person/²", None)),
        ("/person/١٢", ("/person/١٢", None)),
        ("/person/9223372036854775807", ("/person/{id}", 9223372036854775807)),
        ("/person/9999999999999999999", ("/person/9999999999999999999", None)),
    ],
)
def test_normalize_path(path, expected):
    assert normalize_path(path) == expected


def test_resolve_collection(snapshot):
    route = resolve(snapshot, "GET", "/Owner")

    assert route.path == "/owner"
    assert route.method == "get"
    assert route.table.name == "owner"
    assert route.identifier is None


def test_resolve_single_record(snapshot):
    route = resolve(snapshot, "delete", "/pet/3")

    assert route.path == "/pet/{id}"
    assert route.identifier == 3
    assert route.table.primary_key == "id"


def test_unknown_path(snapshot):
    with pytest.raises(RouteNotFoundError) as error:
        resolve(snapshot, "GET", "/nothing")
    assert error.value.message == "That resource doesn't exist"


def test_known_path_unknown_method(snapshot):
    with pytest.raises(MethodNotAllowedError) as error:
        resolve(snapshot, "POST", "/owner/1")
    assert error.value.message == "Method post is not supported"
