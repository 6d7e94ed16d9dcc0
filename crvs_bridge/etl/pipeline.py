"""
Birth-registration pipeline: extract -> resolve -> assemble [-> load].

Each step receives and returns a context dict, as the DAG runner expects.
The initial context carries the webhook body plus per-request inputs:
    body            webhook JSON
    identity_store  IdentityStore used by the resolver
    hints           optional ParentHints for this request only
    strict          raise AmbiguousResourceMatch instead of first-match
    now             processing instant (ISO string) for created_at fields
    db              SQLAlchemy session; only needed when the load step runs
"""

from __future__ import annotations

import logging
from typing import Any

from crvs_bridge.etl.assembler import assemble_write_set
from crvs_bridge.etl.dag import DAG
from crvs_bridge.etl.extractor import ParentHints, extract_resources
from crvs_bridge.etl.resolver import resolve_identities
from crvs_bridge.schemas.writeset import WriteSet
from crvs_bridge.services.identity import IdentityStore
from crvs_bridge.services.persistence import persist_write_set

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


def extract(context: dict[str, Any]) -> dict[str, Any]:
    extracted = extract_resources(
        context["body"],
        hints=context.get("hints"),
        strict=context.get("strict", False),
    )
    return {"extracted": extracted}


def resolve(context: dict[str, Any]) -> dict[str, Any]:
    identities = resolve_identities(context["extracted"], context["identity_store"])
    return {"identities": identities}


def assemble(context: dict[str, Any]) -> dict[str, Any]:
    write_set = assemble_write_set(
        context["extracted"], context["identities"], now=context.get("now")
    )
    logger.info(
        "Assembled write-set for event %s: %d participants, %d new persons",
        write_set.event.crvs_event_uuid,
        len(write_set.participants),
        len(write_set.new_persons),
    )
    return {
        "write_set": write_set,
        "participant_count": len(write_set.participants),
        "new_person_count": len(write_set.new_persons),
    }


def load(context: dict[str, Any]) -> dict[str, Any]:
    inserted = persist_write_set(context["db"], context["write_set"])
    return {"inserted": inserted, "load_count": sum(inserted.values())}


# ---------------------------------------------------------------------------
# Pipeline factory
# ---------------------------------------------------------------------------

def build_registration_pipeline(with_load: bool = False) -> DAG:
    dag = DAG("birth_registration")
    dag.add_task("extract", extract)
    dag.add_task("resolve", resolve, depends_on=["extract"])
    dag.add_task("assemble", assemble, depends_on=["extract", "resolve"])
    if with_load:
        dag.add_task("load", load, depends_on=["assemble"])
    return dag


def process_registration(
    body: dict[str, Any],
    identity_store: IdentityStore,
    *,
    hints: ParentHints | None = None,
    strict: bool = False,
    now: str | None = None,
    db=None,
) -> tuple[WriteSet, DAG]:
    """
    Run the pipeline for one webhook body and return the write-set.
    Any step failure is re-raised with its original exception type; when
    ``db`` is given the write-set is also persisted in one transaction.
    """
    pipeline = build_registration_pipeline(with_load=db is not None)
    pipeline.run(
        initial_context={
            "body": body,
            "identity_store": identity_store,
            "hints": hints,
            "strict": strict,
            "now": now,
            "db": db,
        }
    )
    pipeline.raise_for_failure()
    return pipeline.tasks["assemble"].result["write_set"], pipeline
