"""Create database schema and seed sample clients for development."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from ledgerdesk.db.session import SessionLocal, engine
from ledgerdesk.models.base import Base
from ledgerdesk.models.client import Client

CLIENTS = [
	{
		"id": "client-harper",
		"client_number": "C-1001",
		"first_name": "Olivia",
		"last_name": "Harper",
		"company_name": None,
		"email": "olivia.harper@example.com",
		"phone": "(555) 201-3344",
		"alternate_phone": None,
	},
	{
		"id": "client-brightline",
		"client_number": "C-1002",
		"first_name": "Marcus",
		"last_name": "Webb",
		"company_name": "Brightline Landscaping LLC",
		"email": "marcus@brightline.example.com",
		"phone": "+1 555 410 7788",
		"alternate_phone": "555-410-7700",
	},
	{
		"id": "client-okafor",
		"client_number": "C-1003",
		"first_name": "Ngozi",
		"last_name": "Okafor",
		"company_name": "Okafor Dental Group",
		"email": "billing@okafordental.example.com",
		"phone": "555.633.9021",
		"alternate_phone": None,
	},
]


async def create_schema() -> None:
	"""Create the database schema if it does not already exist."""

	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def seed_clients() -> None:
	"""Insert or update demo clients used for caller matching."""

	async with SessionLocal() as session:
		async with session.begin():
			for client_data in CLIENTS:
				client = await session.get(Client, client_data["id"])
				if client is None:
					client = Client(
						**client_data,
						is_active=True,
						created_at=datetime.now(timezone.utc),
					)
					session.add(client)
				else:
					for field, value in client_data.items():
						setattr(client, field, value)
					client.is_active = True
					session.add(client)


async def main() -> None:
	await create_schema()
	await seed_clients()
	print("Database schema ensured and demo clients seeded.")


if __name__ == "__main__":
	asyncio.run(main())
