"""
workers/delivery_worker.py

Worker assíncrono que entrega as atividades de saída enfileiradas pelo inbox.

Fluxo:
1. Consome DeliveryTasks da fila (delivery_queue)
2. Assina e envia a atividade ao inbox do destinatário (ActivityDelivery)
3. Registra o resultado — falhas não são reenfileiradas
"""

import asyncio
import logging

from app.activitypub.delivery import ActivityDelivery, DeliveryResult
from app.services.queue import DeliveryTask

log = logging.getLogger(__name__)


async def handle_task(delivery: ActivityDelivery, task: DeliveryTask) -> DeliveryResult:
    result = await delivery.send_activity(task.sender, task.recipient, task.activity)
    if not result.ok:
        log.warning(
            f"{task.activity.kind.value} para {task.recipient.uri} não entregue: {result.error}"
        )
    return result


async def run_worker(delivery: ActivityDelivery, queue: asyncio.Queue) -> None:
    log.info("Worker de entregas iniciado")
    while True:
        try:
            task = await asyncio.wait_for(queue.get(), timeout=5.0)
        except asyncio.TimeoutError:
            continue
        try:
            await handle_task(delivery, task)
        except Exception as e:
            log.error(f"Erro no worker: {e}", exc_info=True)
        finally:
            queue.task_done()
