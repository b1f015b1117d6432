import httpx
import pytest

from docschat.catalog import ProviderCatalog, build_catalog
from docschat.client.selection import CatalogStore
from docschat.errors import InvalidSelectionError
from docschat.schemas.catalog import ModelInfo, Provider, Selection


@pytest.fixture
def store():
    return CatalogStore(build_catalog())


def test_starts_on_default_selection(store):
    assert store.selection == Selection(provider_id="anthropic", model_id="claude-3-5-sonnet-20241022")
    assert store.selected_provider.name == "Anthropic"
    assert store.selected_model.name == "Claude 3.5 Sonnet"
    assert [p.id for p in store.available_providers()] == ["anthropic", "openai", "google"]


def test_select_provider_falls_back_to_its_default_model(store):
    store.select_provider("openai")
    assert store.selection == Selection(provider_id="openai", model_id="gpt-4o")
    assert [m.id for m in store.available_models()] == ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo"]


def test_select_provider_keeps_model_the_new_provider_also_has():
    shared = ModelInfo(id="shared", name="Shared")
    catalog = ProviderCatalog(
        [
            Provider(id="one", name="One", models=(ModelInfo(id="only-one", name="O"), shared)),
            Provider(id="two", name="Two", models=(ModelInfo(id="first", name="F"), shared)),
        ]
    )
    store = CatalogStore(catalog)
    store.select_model("shared")
    store.select_provider("two")
    assert store.selection == Selection(provider_id="two", model_id="shared")


def test_disabled_or_unknown_provider_is_rejected(store):
    before = store.selection
    with pytest.raises(InvalidSelectionError, match="not enabled"):
        store.select_provider("ibm")
    with pytest.raises(InvalidSelectionError):
        store.select_provider("nope")
    assert store.selection == before


def test_select_model_must_belong_to_selected_provider(store):
    store.select_model("claude-3-opus-20240229")
    assert store.selected_model.id == "claude-3-opus-20240229"
    with pytest.raises(InvalidSelectionError, match="Model not found"):
        store.select_model("gpt-4o")
    assert store.selected_model.id == "claude-3-opus-20240229"


def test_set_selection_and_reset(store):
    store.set_selection("google", "gemini-1.5-flash")
    assert store.selected_model.name == "Gemini 1.5 Flash"
    with pytest.raises(InvalidSelectionError):
        store.set_selection("ibm", "granite-3.0-8b-instruct")
    store.reset()
    assert store.selection.provider_id == "anthropic"


def test_initial_selection_is_validated():
    with pytest.raises(InvalidSelectionError):
        CatalogStore(build_catalog(), selection=Selection(provider_id="ibm", model_id="granite-3.0-8b-instruct"))
    store = CatalogStore(build_catalog(), selection=Selection(provider_id="openai", model_id="gpt-4o-mini"))
    assert store.selected_model.id == "gpt-4o-mini"


def _providers_body(default):
    body = {
        "providers": [
            {"id": "off", "name": "Off", "isEnabled": False, "models": [{"id": "m0", "name": "M0"}]},
            {
                "id": "on",
                "name": "On",
                "isEnabled": True,
                "supportsStreaming": True,
                "models": [{"id": "m1", "name": "M1"}, {"id": "m2", "name": "M2", "isDefault": True}],
            },
        ]
    }
    if default is not None:
        body["defaultSelection"] = default
    return body


@pytest.mark.parametrize(
    "default, expected",
    [
        ({"providerId": "on", "modelId": "m1"}, ("on", "m1")),
        ({"providerId": "off", "modelId": "m0"}, ("on", "m2")),  # disabled default is ignored
        ({"providerId": "on", "modelId": "gone"}, ("on", "m2")),
        (None, ("on", "m2")),
    ],
)
async def test_load_from_server(default, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/providers/models"
        return httpx.Response(200, json=_providers_body(default))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as client:
        store = await CatalogStore.load(client)

    assert (store.selection.provider_id, store.selection.model_id) == expected
    assert store.selected_provider.supports_streaming
    assert [p.id for p in store.catalog.list_providers()] == ["off", "on"]


async def test_load_raises_on_http_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"}))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        with pytest.raises(httpx.HTTPStatusError):
            await CatalogStore.load(client)
