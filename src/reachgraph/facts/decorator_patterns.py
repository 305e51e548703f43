"""Decorator pattern registry for entry point detection.

This module defines patterns for framework decorators that mark a function
as externally invoked: HTTP route handlers, CLI commands, scheduled jobs
and message consumers. Providers consult these patterns while walking a
file and attach an EntryPoint to matching definitions.
"""

from dataclasses import dataclass

from reachgraph.facts.models import EntryPointKind


@dataclass(frozen=True)
class EntryPointPattern:
    """Pattern for decorators that mark symbols as externally invoked.

    Attributes:
        decorator_name: Regex matching decorator name.
        object_name: Regex matching object, None for bare decorators.
        kind: Entry point kind assigned on match.
    """

    decorator_name: str
    object_name: str | None
    kind: EntryPointKind


HTTP_METHODS = r"^(get|post|put|patch|delete|head|options|trace)$"

# Registry keyed by language
ENTRY_POINT_PATTERNS: dict[str, list[EntryPointPattern]] = {
    "python": [
        # FastAPI/Starlette routes
        EntryPointPattern(HTTP_METHODS, r".*", EntryPointKind.HTTP_ROUTE),
        # Flask/Quart blueprints and apps
        EntryPointPattern(r"^route$", r".*", EntryPointKind.HTTP_ROUTE),
        EntryPointPattern(r"^(websocket|api_route)$", r".*", EntryPointKind.HTTP_ROUTE),
        # Click/Typer CLI
        EntryPointPattern(r"^command$", r".*", EntryPointKind.CLI_COMMAND),
        EntryPointPattern(r"^group$", r".*", EntryPointKind.CLI_COMMAND),
        EntryPointPattern(r"^command$", None, EntryPointKind.CLI_COMMAND),
        # Celery, APScheduler, Dramatiq
        EntryPointPattern(r"^(task|periodic_task)$", r".*", EntryPointKind.SCHEDULED_JOB),
        EntryPointPattern(r"^shared_task$", None, EntryPointKind.SCHEDULED_JOB),
        EntryPointPattern(r"^scheduled_job$", r".*", EntryPointKind.SCHEDULED_JOB),
        EntryPointPattern(r"^cron$", r".*", EntryPointKind.SCHEDULED_JOB),
        EntryPointPattern(r"^actor$", None, EntryPointKind.MESSAGE_CONSUMER),
        # Message brokers (FastStream, Kafka wrappers)
        EntryPointPattern(
            r"^(subscriber|consumer|listener)$", r".*", EntryPointKind.MESSAGE_CONSUMER
        ),
        EntryPointPattern(r"^on_message$", r".*", EntryPointKind.MESSAGE_CONSUMER),
    ],
    "typescript": [
        # NestJS controllers
        EntryPointPattern(
            r"^(Get|Post|Put|Patch|Delete|Head|Options|All)$", None, EntryPointKind.HTTP_ROUTE
        ),
        EntryPointPattern(r"^(Cron|Interval|Timeout)$", None, EntryPointKind.SCHEDULED_JOB),
        EntryPointPattern(
            r"^(MessagePattern|EventPattern|Process|OnEvent)$",
            None,
            EntryPointKind.MESSAGE_CONSUMER,
        ),
        EntryPointPattern(r"^Command$", None, EntryPointKind.CLI_COMMAND),
    ],
}

ENTRY_POINT_PATTERNS["javascript"] = ENTRY_POINT_PATTERNS["typescript"]

ENTRY_POINT_PATTERNS["java"] = [
    # Spring MVC
    EntryPointPattern(
        r"^(Get|Post|Put|Patch|Delete|Request)Mapping$", None, EntryPointKind.HTTP_ROUTE
    ),
    EntryPointPattern(r"^Scheduled$", None, EntryPointKind.SCHEDULED_JOB),
    EntryPointPattern(
        r"^(KafkaListener|RabbitListener|JmsListener|SqsListener)$",
        None,
        EntryPointKind.MESSAGE_CONSUMER,
    ),
]

ENTRY_POINT_PATTERNS["kotlin"] = ENTRY_POINT_PATTERNS["java"]
