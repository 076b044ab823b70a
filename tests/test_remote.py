import httpx
import pytest
from conftest import body_of, run

from backoffice.core.errors import ErrorKind, RemoteError
from backoffice.core.remote import SupabaseClient


async def _use(make_client, fn):
    async with make_client() as client:
        return await fn(client)


def test_requests_carry_api_key_and_user_token(fake, make_client):
    fake.on("GET", "/rest/v1/products", json=[])

    run(_use(make_client, lambda c: c.select("products")))

    request = fake.requests[0]
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer user-token"


def test_anon_key_is_used_as_bearer_without_user_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    async def go():
        async with SupabaseClient("http://supabase.test", "anon-key", transport=httpx.MockTransport(handler)) as c:
            await c.select("products")

    run(go())
    assert seen[0].headers["authorization"] == "Bearer anon-key"


def test_select_with_relations_and_single_row(fake, make_client):
    fake.on("GET", "/rest/v1/products", json={"id": "p1"})

    row = run(
        _use(
            make_client,
            lambda c: c.select("products", "*, product_prices (*)", {"id": "p1"}, single=True),
        )
    )

    assert row == {"id": "p1"}
    request = fake.requests[0]
    assert request.url.params["select"] == "*,product_prices(*)"
    assert request.url.params["id"] == "eq.p1"
    assert request.headers["accept"] == "application/vnd.pgrst.object+json"


def test_single_with_no_rows_raises_not_found(fake, make_client):
    fake.on("GET", "/rest/v1/products", status=406, json={"code": "PGRST116", "message": "no rows"})

    with pytest.raises(RemoteError) as exc:
        run(_use(make_client, lambda c: c.select("products", filters={"id": "nope"}, single=True)))

    assert exc.value.kind is ErrorKind.NOT_FOUND


def test_rpc_posts_params_as_json(fake, make_client):
    fake.on("POST", "/rest/v1/rpc/create_product_with_price", json={"id": "p9"})

    out = run(_use(make_client, lambda c: c.rpc("create_product_with_price", {"_name": "Soap"})))

    assert out == {"id": "p9"}
    assert body_of(fake.requests[0]) == {"_name": "Soap"}


def test_insert_and_upsert_ask_for_representation(fake, make_client):
    fake.on("POST", "/rest/v1/product_images", json=[{"id": "i1"}])
    fake.on("POST", "/rest/v1/profiles", json=[{"id": "u1"}])

    async def go(c):
        await c.insert("product_images", [{"image_url": "a.png"}])
        await c.upsert("profiles", {"id": "u1"})

    run(_use(make_client, go))

    insert, upsert = fake.requests
    assert insert.headers["prefer"] == "return=representation"
    assert body_of(insert) == [{"image_url": "a.png"}]
    assert upsert.headers["prefer"] == "resolution=merge-duplicates,return=representation"
    assert body_of(upsert) == {"id": "u1"}


def test_upload_and_download_objects(fake, make_client):
    fake.on("POST", "/storage/v1/object/product-images/", json={"Key": "product-images/u1-0.5.png"})
    fake.on(
        "GET",
        "/storage/v1/object/product-images/",
        handler=lambda r: httpx.Response(200, content=b"\x89PNG"),
    )

    async def go(c):
        key = await c.upload("product-images", "u1-0.5.png", b"\x89PNG", "image/png")
        data = await c.download("product-images", "u1-0.5.png")
        return key, data

    key, data = run(_use(make_client, go))

    assert key == "product-images/u1-0.5.png"
    assert data == b"\x89PNG"
    upload = fake.requests[0]
    assert upload.url.path == "/storage/v1/object/product-images/u1-0.5.png"
    assert upload.headers["content-type"] == "image/png"
    assert upload.headers["x-upsert"] == "false"
    assert upload.content == b"\x89PNG"


def test_storage_error_is_classified(fake, make_client):
    fake.on("POST", "/storage/v1/object/avatars/", status=400, json={"statusCode": "413", "error": "Payload too large"})

    with pytest.raises(RemoteError) as exc:
        run(_use(make_client, lambda c: c.upload("avatars", "u1-0.1.png", b"x")))

    assert exc.value.kind is ErrorKind.STORAGE


def test_transport_failure_is_network():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def go():
        async with SupabaseClient("http://supabase.test", "anon-key", transport=httpx.MockTransport(handler)) as c:
            await c.select("products")

    with pytest.raises(RemoteError) as exc:
        run(go())

    assert exc.value.kind is ErrorKind.NETWORK


@pytest.mark.parametrize("path", ["../avatars/u2-0.1.png", "a/./b.png", "/etc/passwd", "u1/.."])
def test_object_paths_stay_inside_the_bucket(fake, make_client, path):
    with pytest.raises(RemoteError) as exc:
        run(_use(make_client, lambda c: c.download("product-images", path)))

    assert exc.value.kind is ErrorKind.VALIDATION
    assert fake.requests == []
