"""
ComplyanceSDK: the caller-facing handle.

One instance owns the configuration, a single CircuitBreaker, the APIClient
and the PersistentQueueManager. The breaker is passed to both so foreground
sends and background redelivery draw on the same failure budget.
"""

import json
import logging
from typing import Any, Optional

from .client import APIClient
from .config import SDKConfig
from .errors import ErrorCode, ErrorDetail, SDKError, ValidationError
from .models import (
    Country,
    Destination,
    LogicalDocType,
    Mode,
    Operation,
    Purpose,
    Source,
    SubmissionStatus,
    UnifyRequest,
    queued_response,
)
from .policy import (
    default_destinations,
    evaluate,
    merge_meta_config,
    set_invoice_document_type,
    validate_country_for_environment,
)
from .resilience.circuit_breaker import CircuitBreaker
from .resilience.queue import (
    FAILED_DIR,
    PENDING_DIR,
    PROCESSING_DIR,
    SUCCESS_DIR,
    PersistentQueueManager,
    QueueStatus,
)
from .resilience.records import PayloadSubmission

logger = logging.getLogger(__name__)

_SERVER_ERROR_CODES = (ErrorCode.SERVER_ERROR, ErrorCode.SERVICE_UNAVAILABLE)


def is_server_error(exc: SDKError) -> bool:
    """5xx-class failure that the queue should take over."""
    status = exc.http_status
    if status is not None:
        return 500 <= status < 600
    return exc.code in _SERVER_ERROR_CODES


def _require(value: Any, field: str, label: str) -> None:
    if value is None:
        raise SDKError(ErrorDetail.missing_field(field, f"{label} is required", f"Provide a valid {label.lower()}."))


class ComplyanceSDK:
    """
    Usage:
        sdk = ComplyanceSDK(load_config("sdk.yaml"))
        response = sdk.submit_invoice("erp", "1.0", Country.SA,
                                      LogicalDocType.TAX_INVOICE, payload)
        print(sdk.get_queue_status())
        sdk.close()
    """

    def __init__(
        self,
        config: SDKConfig,
        client: Optional[APIClient] = None,
        queue_manager: Optional[PersistentQueueManager] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        enable_queue: bool = True,
    ):
        if config is None:
            raise SDKError(ErrorDetail(
                code=ErrorCode.CONFIGURATION_ERROR,
                message="SDKConfig is required",
                suggestion="Pass an SDKConfig, e.g. from load_config().",
            ))
        self.config = config
        self.circuit_breaker = circuit_breaker or CircuitBreaker("unify_api", config.circuit_breaker)

        self.client = client or APIClient(
            config.api_key,
            config.environment,
            config.retry_config,
            self.circuit_breaker,
            correlation_id=config.correlation_id,
        )

        if queue_manager is None and enable_queue:
            queue_manager = PersistentQueueManager(
                config.queue_path,
                dispatch=self.client.dispatch,
                circuit_breaker=self.circuit_breaker,
            )
        self.queue_manager = queue_manager

        logger.info(f"Complyance SDK configured for {config.environment.value}")

    def __enter__(self) -> "ComplyanceSDK":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self.queue_manager is not None:
            self.queue_manager.stop_processing(timeout=5)
        self.client.close()

    # --- Submission ---

    def push_to_unify(
        self,
        source_name: Optional[str],
        source_version: Optional[str],
        logical_type: LogicalDocType,
        country: Country,
        operation: Operation,
        mode: Mode,
        purpose: Purpose,
        payload: dict[str, Any],
        destinations: Optional[list[Destination]] = None,
    ) -> dict[str, Any]:
        """
        Submit a document, handing it to the retry queue on server-side failure.

        Returns:
            API response, or a "queued" acknowledgment carrying the request id

        Raises:
            SDKError: Validation, authentication and other non-server failures
        """
        logger.info(
            f"pushToUnify: {source_name}:{source_version}, "
            f"type={getattr(logical_type, 'value', logical_type)}, country={getattr(country, 'value', country)}"
        )

        self.process_pending_submissions()

        if purpose == Purpose.MAPPING:
            source_name = source_name or ""
            source_version = source_version or ""
        else:
            if source_name is None or not source_name.strip():
                raise SDKError(ErrorDetail.missing_field(
                    "source_name", "Source name is required", "Provide a valid source name."))
            if source_version is None or not source_version.strip():
                raise SDKError(ErrorDetail.missing_field(
                    "source_version", "Source version is required", "Provide a valid source version."))

        _require(logical_type, "logical_type", "Logical document type")
        _require(country, "country", "Country")
        _require(operation, "operation", "Operation")
        _require(mode, "mode", "Mode")
        _require(purpose, "purpose", "Purpose")
        _require(payload, "payload", "Payload")

        validate_country_for_environment(country, self.config.environment)

        policy = evaluate(country, logical_type)
        merged = merge_meta_config(payload, policy.meta_config_flags)
        merged = set_invoice_document_type(merged, logical_type)

        if destinations is None:
            destinations = (
                default_destinations(country, policy.document_type)
                if self.config.auto_generate_tax_destination else []
            )

        request = UnifyRequest(
            source=Source(name=source_name, version=source_version),
            document_type=policy.base_type,
            document_type_string=policy.document_type,
            country=country,
            operation=operation,
            mode=mode,
            purpose=purpose,
            payload=merged,
            destinations=destinations,
            api_key=self.config.api_key,
            env=self.config.environment,
            correlation_id=self.config.correlation_id,
        )
        return self._send_or_queue(request)

    def _send_or_queue(self, request: UnifyRequest) -> dict[str, Any]:
        try:
            return self.client.send_unify_request(request)
        except SDKError as e:
            if not is_server_error(e) or self.queue_manager is None:
                raise
            logger.warning(f"Server error for {request.request_id}, adding to retry queue: {e}")
            submission = PayloadSubmission(
                payload=json.dumps(request.to_dict()),
                source=request.source,
                country=request.country.value,
                document_type=request.document_type.value,
            )
            self.queue_manager.enqueue(submission, e.detail)
            return queued_response(request.request_id)

    def push_to_unify_from_json(
        self,
        source_name: Optional[str],
        source_version: Optional[str],
        logical_type: LogicalDocType,
        country: Country,
        operation: Operation,
        mode: Mode,
        purpose: Purpose,
        json_payload: str,
        destinations: Optional[list[Destination]] = None,
    ) -> dict[str, Any]:
        """Same as push_to_unify with the payload given as a JSON string."""
        if json_payload is None or not json_payload.strip():
            raise SDKError(ErrorDetail.missing_field("payload", "Payload is required", "Provide a valid JSON payload."))
        try:
            payload = json.loads(json_payload)
        except json.JSONDecodeError as e:
            raise SDKError(ErrorDetail(
                code=ErrorCode.INVALID_PAYLOAD_FORMAT,
                message=f"Failed to parse JSON payload: {e.msg}",
                suggestion="Ensure the payload is a valid JSON object.",
                context={"position": e.pos},
            )) from e
        if not isinstance(payload, dict):
            raise SDKError(ErrorDetail(
                code=ErrorCode.INVALID_PAYLOAD_FORMAT,
                message="JSON payload must be an object",
                suggestion="Wrap the document fields in a JSON object.",
            ))
        return self.push_to_unify(
            source_name, source_version, logical_type, country,
            operation, mode, purpose, payload, destinations,
        )

    def submit_invoice(
        self,
        source_name: str,
        source_version: str,
        country: Country,
        logical_type: LogicalDocType,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        return self.push_to_unify(
            source_name, source_version, logical_type, country,
            Operation.SINGLE, Mode.DOCUMENTS, Purpose.INVOICING, payload,
        )

    def create_mapping(
        self,
        source_name: Optional[str],
        source_version: Optional[str],
        country: Country,
        logical_type: LogicalDocType,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        return self.push_to_unify(
            source_name, source_version, logical_type, country,
            Operation.SINGLE, Mode.DOCUMENTS, Purpose.MAPPING, payload,
        )

    def push_to_unify_request(self, request: UnifyRequest) -> dict[str, Any]:
        """Send a prebuilt request."""
        _require(request, "request", "UnifyRequest")
        return self._send_or_queue(request)

    def submit_payload(
        self,
        payload_json: str,
        country: Country,
        logical_type: LogicalDocType,
        source_id: str,
    ) -> dict[str, Any]:
        """Submit a JSON payload on behalf of a configured "name:version" source."""
        if not payload_json or not payload_json.strip():
            raise ValidationError("Payload is required", "Provide a valid JSON payload.", field="payload")
        if not source_id or not source_id.strip():
            raise ValidationError("Source ID is required", "Provide a valid source ID.", field="source_id")
        source = self.config.find_source(source_id)
        if source is None:
            raise ValidationError("Source not found", "Check the source ID or configure the source.", field="source_id")
        return self.push_to_unify_from_json(
            source.name, source.version, logical_type, country,
            Operation.SINGLE, Mode.DOCUMENTS, Purpose.INVOICING, payload_json,
        )

    def get_status(self, submission_id: str) -> SubmissionStatus:
        """Local view of a submission's status from the queue directories."""
        if self.queue_manager is not None:
            base = self.queue_manager.base_path
            for directory, status in (
                (SUCCESS_DIR, SubmissionStatus.COMPLETED),
                (PROCESSING_DIR, SubmissionStatus.PROCESSING),
                (PENDING_DIR, SubmissionStatus.QUEUED),
                (FAILED_DIR, SubmissionStatus.FAILED),
            ):
                for path in (base / directory).glob("*.json"):
                    try:
                        stored = json.loads(path.read_text(encoding="utf-8"))
                    except (OSError, json.JSONDecodeError):
                        continue
                    if (stored.get("payload") or {}).get("requestId") == submission_id:
                        return status
        return SubmissionStatus.SUBMITTED

    # --- Queue administration ---

    def get_queue_status(self) -> QueueStatus:
        if self.queue_manager is None:
            return QueueStatus()
        return self.queue_manager.get_queue_status()

    def retry_failed_submissions(self) -> int:
        return self.queue_manager.retry_failed_submissions() if self.queue_manager else 0

    def cleanup_old_success_files(self, days_to_keep: int) -> int:
        return self.queue_manager.cleanup_old_success_files(days_to_keep) if self.queue_manager else 0

    def clear_all_queues(self) -> int:
        return self.queue_manager.clear_all_queues() if self.queue_manager else 0

    def cleanup_duplicate_files(self) -> int:
        return self.queue_manager.cleanup_duplicate_files() if self.queue_manager else 0

    def process_pending_submissions(self) -> int:
        """Run one redelivery cycle now, before handling new work."""
        if self.queue_manager is None:
            return 0
        return self.queue_manager.process_pending_submissions_now()
