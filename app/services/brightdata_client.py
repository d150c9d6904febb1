# app/services/brightdata_client.py

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests

from app.errors import InvalidTriggerResponse, TriggerRequestFailed
from app.services.payload_shapes import extract_batch_id

logger = logging.getLogger(__name__)

TRIGGER_PATH = "/datasets/v3/trigger"


class BrightDataClient:
    """
    Starts BrightData collection jobs that call back our webhook.

    Every trigger advertises WEBHOOK_URL as the delivery endpoint and embeds
    the shared secret as ``auth_header`` so BrightData echoes it back.
    """

    def __init__(
        self,
        *,
        api_key: str,
        dataset_id: str,
        webhook_url: str,
        webhook_secret: str = "",
        base_url: str = "https://api.brightdata.com",
        company_dataset_id: Optional[str] = None,
        indeed_dataset_id: Optional[str] = None,
        indeed_api_key: Optional[str] = None,
        limit_per_input: int = 2,
        timeout: int = 3600,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.dataset_id = dataset_id
        self.company_dataset_id = company_dataset_id or dataset_id
        self.indeed_dataset_id = indeed_dataset_id
        self.indeed_api_key = indeed_api_key or api_key
        self.webhook_url = webhook_url
        self.webhook_secret = webhook_secret or api_key
        self.base_url = base_url.rstrip("/")
        self.limit_per_input = limit_per_input
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def configured(self) -> bool:
        return bool(self.api_key and self.dataset_id)

    # --------------------------------------------------
    # Low level
    # --------------------------------------------------
    def _webhook_params(self) -> Dict[str, Any]:
        return {
            "endpoint": self.webhook_url,
            "auth_header": self.webhook_secret,
            "format": "json",
            "uncompressed_webhook": "true",
            "include_errors": "true",
        }

    def _discovery_params(self, dataset_id: str) -> Dict[str, Any]:
        return {
            "dataset_id": dataset_id,
            "type": "discover_new",
            "discover_by": "keyword",
            "limit_per_input": self.limit_per_input,
            **self._webhook_params(),
        }

    def _post(
        self,
        *,
        platform: str,
        params: Dict[str, Any],
        inputs: List[Dict[str, Any]],
        api_key: Optional[str] = None,
    ) -> Any:
        logger.info(
            "Triggering %s collection (dataset=%s, inputs=%d, webhook=%s)",
            platform, params.get("dataset_id"), len(inputs), self.webhook_url,
        )

        try:
            resp = self.session.post(
                f"{self.base_url}{TRIGGER_PATH}",
                params=params,
                json=inputs,
                headers={"Authorization": f"Bearer {api_key or self.api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise TriggerRequestFailed(platform, f"Trigger request failed: {e}") from e

    @staticmethod
    def _batch_id(response: Any, platform: str) -> str:
        batch_id = extract_batch_id(response)
        if not batch_id:
            raise InvalidTriggerResponse(
                f"[{platform}] Invalid trigger response: no snapshot id in {response!r:.200}"
            )
        return batch_id

    # --------------------------------------------------
    # Triggers
    # --------------------------------------------------
    def trigger(self, inputs: List[Dict[str, Any]]) -> str:
        """
        Keyword job search. Returns the BrightData snapshot id.
        """
        response = self._post(
            platform="linkedin",
            params=self._discovery_params(self.dataset_id),
            inputs=inputs,
        )
        return self._batch_id(response, "linkedin")

    def trigger_company_lookup(self, urls: List[str]) -> str:
        params = {"dataset_id": self.company_dataset_id, **self._webhook_params()}
        response = self._post(
            platform="linkedin_company",
            params=params,
            inputs=[{"url": url} for url in urls],
        )
        return self._batch_id(response, "linkedin_company")

    def trigger_both_platforms(self, search: Dict[str, Any]) -> Dict[str, str]:
        """
        LinkedIn + Indeed at the same time.

        Both calls run concurrently and are joined before any identifier is
        read; the first failure (tagged with its platform) is raised and a
        partial success is not reported.
        """
        if not self.indeed_dataset_id:
            raise TriggerRequestFailed("indeed", "INDEED_DATASET_ID is not configured")

        linkedin_inputs = [{
            "keyword": search.get("keyword"),
            "location": search.get("location"),
            "country": search.get("country"),
        }]
        indeed_inputs = [{
            "country": search.get("country"),
            "domain": "indeed.com",
            "keyword_search": search.get("keyword"),
            "location": search.get("location"),
        }]

        with ThreadPoolExecutor(max_workers=2) as pool:
            linkedin = pool.submit(
                self._post,
                platform="linkedin",
                params=self._discovery_params(self.dataset_id),
                inputs=linkedin_inputs,
            )
            indeed = pool.submit(
                self._post,
                platform="indeed",
                params=self._discovery_params(self.indeed_dataset_id),
                inputs=indeed_inputs,
                api_key=self.indeed_api_key,
            )

            # the pool joins both calls before an error leaves this block
            responses = {"linkedin": linkedin.result(), "indeed": indeed.result()}

        return {
            platform: self._batch_id(response, platform)
            for platform, response in responses.items()
        }
