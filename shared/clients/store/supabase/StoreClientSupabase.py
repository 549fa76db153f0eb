import httpx

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.StoreDocument import StoreDocument
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class StoreClientSupabase(StoreClientInterface):
    """Document store backed by a Supabase table, accessed through its PostgREST API."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._table = self.get_config_val("TABLE", default="resources", val_type="string")
        self._content_column = self.get_config_val("CONTENT_COLUMN", default="content", val_type="string")
        self._deleted_column = self.get_config_val("DELETED_COLUMN", default="deleted_at", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Supabase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="TABLE", val_type="string", default="resources"),
            EnvConfig(env_key="CONTENT_COLUMN", val_type="string", default="content"),
            EnvConfig(env_key="DELETED_COLUMN", val_type="string", default="deleted_at"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"apikey": self._api_key, "Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/rest/v1/{self._table}?select=id&limit=1"

    def _get_endpoint_documents(self) -> str:
        return f"/rest/v1/{self._table}"

    ##########################################
    ############ PARAMS BUILDER ##############
    ##########################################

    def get_list_ids_params(self, offset: int, limit: int) -> dict:
        return {
            "select": "id",
            "order": "id.asc",
            "offset": offset,
            "limit": limit,
            self._deleted_column: "is.null",
        }

    def get_list_ids_headers(self) -> dict:
        return {"Prefer": "count=exact"}

    def get_document_params(self, doc_id: str) -> dict:
        return {
            "select": "*",
            "id": f"eq.{doc_id}",
            self._deleted_column: "is.null",
            "limit": 1,
        }

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_total(self, response: httpx.Response) -> int | None:
        # Content-Range: "0-999/4711", the total is "*" unless count=exact was honoured
        total = response.headers.get("Content-Range", "").rpartition("/")[2]
        return int(total) if total.isdigit() else None

    def extract_ids(self, raw_response: list | dict) -> list[str]:
        rows = raw_response if isinstance(raw_response, list) else []
        return [str(row["id"]) for row in rows if row.get("id") is not None]

    def extract_document(self, raw_response: list | dict) -> StoreDocument | None:
        rows = raw_response if isinstance(raw_response, list) else []
        if not rows:
            return None
        row: dict = rows[0]
        return StoreDocument(
            id=str(row["id"]),
            title=row.get("title") or "",
            content_type=row.get("type") or "document",
            tags=[str(tag) for tag in (row.get("tags") or [])],
            created_at=row.get("created_at"),
            text=row.get(self._content_column) or row.get("content_snippet"),
            source_ref=row.get("path"),
        )
