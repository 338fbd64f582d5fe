"""AWS Lambda handlers for the Localist events pull."""
import base64
import json
import logging
import os
import time
from typing import Dict, Any, Optional

from config import Settings, load_settings
from feed.localist_client import LocalistFeedClient, FeedTransportError
from processor.event_normalizer import EventNormalizer
from processor.models import OutcomeStatus, PullResult, ReconcileOutcome
from processor.reconciler import EventReconciler
from scheduler.eventbridge_trigger import EventBridgeTrigger
from storage.record_store import DynamoDBRecordStore
from storage.settings_store import ParameterStoreSettings

ADMIN_PAGE = 'pull_mit_events'
TRIGGER_NAME = 'daily_event_pull'


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def pull_events(settings: Settings, confirm: bool = False) -> PullResult:
    """
    Pull the events feed and reconcile it with the record store.

    Args:
        settings: Configuration for this run
        confirm: Collect one confirmation line per event for the caller

    Returns:
        PullResult with per-outcome counts

    Raises:
        FeedTransportError: If the feed cannot be fetched; nothing is processed
    """
    logger = logging.getLogger(__name__)

    client = LocalistFeedClient(timeout=settings.timeout_seconds)
    normalizer = EventNormalizer(timezone=settings.timezone)
    store = DynamoDBRecordStore(table_name=settings.table_name)
    reconciler = EventReconciler(store, default_category=settings.default_category)

    raw = client.fetch(settings.feed_url)
    events = normalizer.normalize(raw)

    result = PullResult(skipped=sum(normalizer.skipped.values()))
    for event in events:
        try:
            outcome = reconciler.reconcile(event)
        except Exception as e:
            logger.error(
                f"Error reconciling event {event.external_id} ({event.title}): {e}",
                exc_info=True
            )
            outcome = ReconcileOutcome(
                status=OutcomeStatus.FAILED,
                title=event.title,
                reason='error',
                errors=[str(e)]
            )

        if outcome.status == OutcomeStatus.CREATED:
            result.created += 1
            line = f"{outcome.title}: Inserted"
        elif outcome.status == OutcomeStatus.UPDATED:
            result.updated += 1
            line = f"{outcome.title}: Updated"
        elif outcome.status == OutcomeStatus.FAILED:
            result.failed += 1
            line = f"{outcome.title}: Failed"
        else:
            result.skipped += 1
            line = f"{outcome.title}: Skipped ({outcome.reason})"

        result.errors.extend(f"{outcome.title}: {error}" for error in outcome.errors)
        if confirm:
            result.confirmations.append(line)

    summary = (
        f"Processed {result.processed} events: {result.created} inserted, "
        f"{result.updated} updated, {result.skipped} skipped, "
        f"{result.failed} failed"
    )
    logger.info(summary)
    if confirm:
        result.confirmations.append(summary)
    return result


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Scheduled entry point invoked by the EventBridge rule.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    start_time = time.time()

    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)

    try:
        settings = load_settings()
        logger.info(
            "Lambda execution started",
            extra={
                'table_name': settings.table_name,
                'timezone': settings.timezone
            }
        )
        result = pull_events(settings, confirm=False)
    except FeedTransportError as e:
        logger.error(
            f"Failed to fetch events feed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        duration = time.time() - start_time
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Failed to fetch events feed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Pull failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }

    duration = time.time() - start_time
    logger.info(
        "Lambda execution completed successfully",
        extra={
            'duration_seconds': round(duration, 2),
            'events_created': result.created,
            'events_updated': result.updated,
            'events_skipped': result.skipped,
            'events_failed': result.failed
        }
    )

    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Pull completed successfully',
            'statistics': {
                'events_created': result.created,
                'events_updated': result.updated,
                'events_skipped': result.skipped,
                'events_failed': result.failed,
                'duration_seconds': round(duration, 2)
            },
            'errors': result.errors
        })
    }


def _request_body(event: Dict[str, Any]) -> Dict[str, Any]:
    body = event.get('body') or ''
    if event.get('isBase64Encoded'):
        body = base64.b64decode(body).decode('utf-8')
    if not body:
        return {}
    try:
        parsed = json.loads(body)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _json_response(status_code: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(payload)
    }


def admin_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Admin entry point behind a Function URL or API Gateway proxy.

    ?page=pull_mit_events&action=pull-events runs the pull and returns the
    confirmation lines as plain text. action=save-settings stores feed_url
    and timezone from a JSON body. Anything else returns the current
    settings.

    Args:
        event: HTTP proxy event
        context: Lambda context object

    Returns:
        HTTP proxy response
    """
    params = event.get('queryStringParameters') or {}
    action = params.get('action')
    settings_store: Optional[ParameterStoreSettings] = None

    settings = load_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    if settings.parameter_prefix:
        settings_store = ParameterStoreSettings(settings.parameter_prefix)

    if params.get('page') == ADMIN_PAGE and action == 'pull-events':
        logger.info("Manual pull requested from admin")
        try:
            result = pull_events(settings, confirm=True)
        except FeedTransportError as e:
            logger.error(f"Failed to fetch events feed: {str(e)}", exc_info=True)
            return {
                'statusCode': 502,
                'headers': {'Content-Type': 'text/plain; charset=utf-8'},
                'body': f"Failed to fetch events feed: {e}\n"
            }
        return {
            'statusCode': 200,
            'headers': {'Content-Type': 'text/plain; charset=utf-8'},
            'body': '\n'.join(result.confirmations) + '\n'
        }

    if action == 'save-settings':
        if settings_store is None:
            return _json_response(400, {
                'message': 'SETTINGS_PARAMETER_PREFIX is not configured'
            })
        body = _request_body(event)
        saved = []
        for name in ParameterStoreSettings.NAMES:
            value = body.get(name)
            if isinstance(value, str) and value.strip():
                settings_store.save(name, value.strip())
                saved.append(name)
        if not saved:
            return _json_response(400, {
                'message': 'Nothing to save, expected feed_url and/or timezone'
            })
        return _json_response(200, {'message': 'Settings saved', 'saved': saved})

    return _json_response(200, {
        'feed_url': settings.feed_url,
        'timezone': settings.timezone,
        'schedule_interval': settings.schedule_interval,
        'usage': {
            'pull_now': f'?page={ADMIN_PAGE}&action=pull-events',
            'save_settings': 'POST ?action=save-settings {"feed_url": ..., "timezone": ...}',
            'feed_url_example': (
                'https://calendar.mit.edu/api/2/events'
                '?pp=500&group_id=11497&exclude_type=102763&days=365'
            )
        }
    })


def lifecycle_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Register or remove the periodic trigger on activation/deactivation.

    The trigger targets the pull function, given either as ``target_arn`` in
    the event or by the PULL_FUNCTION_ARN setting. The function handling this
    event is never used as the target.

    Args:
        event: {"action": "activate" | "deactivate", "target_arn": optional}
        context: Lambda context object

    Returns:
        Response dict with statusCode
    """
    settings = load_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    action = event.get('action')
    trigger = EventBridgeTrigger()

    if action == 'activate':
        target_arn = event.get('target_arn') or settings.pull_function_arn
        if not target_arn:
            logger.error("Cannot activate periodic pull: no pull function ARN configured")
            return {
                'statusCode': 400,
                'body': json.dumps({
                    'message': 'No target ARN, pass target_arn or set PULL_FUNCTION_ARN'
                })
            }
        rule_arn = trigger.register_periodic_trigger(
            TRIGGER_NAME, settings.schedule_interval, target_arn
        )
        logger.info(f"Activated periodic pull: {rule_arn}")
        return {'statusCode': 200, 'body': json.dumps({'rule_arn': rule_arn})}

    if action == 'deactivate':
        removed = trigger.unregister_trigger(TRIGGER_NAME)
        return {'statusCode': 200, 'body': json.dumps({'removed': removed})}

    return {
        'statusCode': 400,
        'body': json.dumps({'message': f'Unknown action: {action}'})
    }
