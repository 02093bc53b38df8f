import httpx
import pytest

from errors import AuthenticationError, DownstreamUnavailableError, RoomNotFoundError
from identity import HttpIdentityResolver, Identity, StaticIdentityResolver
from rooms import HttpRoomDirectory, Room, StaticRoomDirectory


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


# -----------------------------
# Room directory
# -----------------------------
def test_get_room_forwards_token_and_parses_room():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"id": 5, "name": "Board room", "capacity": 12})

    directory = HttpRoomDirectory("http://rooms.local/", client=mock_client(handler))
    room = directory.get_room("5", token="abc")

    assert room == Room(id="5", capacity=12, status="active")
    assert seen["url"] == "http://rooms.local/api/rooms/5"
    assert seen["auth"] == "Bearer abc"


def test_get_room_not_found():
    directory = HttpRoomDirectory("http://rooms.local", client=mock_client(lambda r: httpx.Response(404)))
    with pytest.raises(RoomNotFoundError):
        directory.get_room("9")


@pytest.mark.parametrize("status_code", [500, 502, 401])
def test_get_room_unexpected_status(status_code):
    directory = HttpRoomDirectory(
        "http://rooms.local", client=mock_client(lambda r: httpx.Response(status_code))
    )
    with pytest.raises(DownstreamUnavailableError):
        directory.get_room("9")


def test_get_room_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    directory = HttpRoomDirectory("http://rooms.local", client=mock_client(handler))
    with pytest.raises(DownstreamUnavailableError) as excinfo:
        directory.get_room("9")
    assert excinfo.value.message == "Room directory timed out."


def test_get_room_connection_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    directory = HttpRoomDirectory("http://rooms.local", client=mock_client(handler))
    with pytest.raises(DownstreamUnavailableError):
        directory.get_room("9")


def test_get_room_malformed_body():
    directory = HttpRoomDirectory(
        "http://rooms.local", client=mock_client(lambda r: httpx.Response(200, text="<html>"))
    )
    with pytest.raises(DownstreamUnavailableError):
        directory.get_room("9")


def test_static_directory():
    directory = StaticRoomDirectory([Room(id="1")])
    assert directory.get_room("1").id == "1"
    with pytest.raises(RoomNotFoundError):
        directory.get_room("2")


# -----------------------------
# Identity
# -----------------------------
def test_resolve_identity_from_auth_service():
    def handler(request):
        assert request.url.path == "/api/me"
        assert request.headers["Authorization"] == "Bearer tok"
        return httpx.Response(200, json={"id": 3, "name": "Dee", "roles": [{"name": "admin"}]})

    resolver = HttpIdentityResolver("http://auth.local", client=mock_client(handler))
    identity = resolver.resolve("tok")

    assert identity == Identity(user_id="3", role="admin")
    assert identity.is_admin
    assert identity.token == "tok"


def test_resolve_plain_user():
    resolver = HttpIdentityResolver(
        "http://auth.local",
        client=mock_client(lambda r: httpx.Response(200, json={"id": 4, "roles": [{"name": "user"}]})),
    )
    assert resolver.resolve("tok").role == "user"


def test_resolve_rejected_token():
    resolver = HttpIdentityResolver("http://auth.local", client=mock_client(lambda r: httpx.Response(401)))
    with pytest.raises(AuthenticationError):
        resolver.resolve("bad")


def test_resolve_auth_service_down():
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    resolver = HttpIdentityResolver("http://auth.local", client=mock_client(handler))
    with pytest.raises(DownstreamUnavailableError):
        resolver.resolve("tok")


def test_static_resolver():
    resolver = StaticIdentityResolver({"t": Identity(user_id="1")})
    assert resolver.resolve("t").user_id == "1"
    with pytest.raises(AuthenticationError):
        resolver.resolve("other")
