"""
app/services/queue.py

Fila em memória das entregas de saída.

O inbox enfileira e responde ao peer na hora; o worker
(`workers/delivery_worker.py`) consome e entrega em segundo plano.
"""

import asyncio
from dataclasses import dataclass

from app.activitypub.activities import Activity
from app.activitypub.actor import Actor


@dataclass(frozen=True)
class DeliveryTask:
    sender: str
    recipient: Actor
    activity: Activity


delivery_queue: asyncio.Queue[DeliveryTask] = asyncio.Queue()
