"""Create tasks for stored calls whose AI suggested actions never became tasks."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select

from ledgerdesk.db.session import SessionLocal
from ledgerdesk.models.call import Call
from ledgerdesk.repositories import tasks as tasks_repo
from ledgerdesk.services.webhooks import TASK_SOURCE, priority_for_urgency

logger = logging.getLogger("backfill_call_tasks")


async def backfill() -> tuple[int, int]:
	"""Return ``(calls_with_actions, tasks_created)``."""

	calls_with_actions = 0
	created = 0

	async with SessionLocal() as session:
		async with session.begin():
			result = await session.execute(select(Call).order_by(Call.created_at.desc()))
			for call in result.scalars():
				analysis = (call.metadata_json or {}).get("analysis") or {}
				actions = [a for a in analysis.get("suggestedActions") or [] if isinstance(a, str) and a.strip()]
				if not actions:
					continue

				calls_with_actions += 1
				existing = await tasks_repo.list_titles_for_call(session, call.id)
				caller = call.caller_name or call.caller_phone or "unknown caller"

				for action in actions:
					if action in existing:
						logger.info("[SKIP] %s", action[:50])
						continue
					await tasks_repo.create_task(
						session,
						title=action,
						priority=priority_for_urgency(analysis.get("urgency")),
						source=TASK_SOURCE,
						source_reference_id=call.id,
						description=(
							f"AI-suggested task from call with {caller}.\n\n"
							f"Call Summary: {call.summary or 'Not available'}"
						),
						client_id=call.client_id,
						source_metadata={
							"callerPhone": call.caller_phone,
							"callerName": call.caller_name,
							"category": analysis.get("category"),
							"urgency": analysis.get("urgency"),
							"backfilled": True,
						},
					)
					existing.add(action)
					created += 1
					logger.info("[CREATED] %s", action[:50])

	return calls_with_actions, created


async def main() -> None:
	logging.basicConfig(level=logging.INFO, format="%(message)s")
	calls_with_actions, created = await backfill()
	print(f"Calls with suggested actions: {calls_with_actions}")
	print(f"Total tasks created: {created}")


if __name__ == "__main__":
	asyncio.run(main())
