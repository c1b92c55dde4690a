"""
Batch and streaming coordination for pricing runs.

Each input runs the synchronous engine in a worker thread. Results are
pushed into a bounded queue and yielded in completion order; closing the
stream cancels whatever is still pending.
"""

import asyncio
from typing import Any, AsyncIterator, List, Optional, Sequence

from shared.config import BaseConfig
from shared.errors import CalculationFailed, PricingEngineException
from shared.logging import get_logger, set_correlation_id
from ..rules.models import BatchPricingItem, PricingRequest, PricingStep, PricingStepUpdate
from ..strategies import StrategyStore
from .pricer import Pricer

_DONE = object()


def _publish(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, item: Any):
    """Hand ``item`` from a worker thread to the loop, unless the loop is gone."""
    if not loop.is_closed():
        loop.call_soon_threadsafe(queue.put_nowait, item)


class BatchPricingCoordinator:
    """Fans pricing inputs out over worker threads."""

    def __init__(self, pricer: Pricer, strategy_store: StrategyStore, settings: BaseConfig):
        self.pricer = pricer
        self.strategy_store = strategy_store
        self.settings = settings
        self.logger = get_logger("pricing.coordinator")

    def stream(
        self,
        inputs: Sequence[PricingRequest],
        requested_days: Optional[int] = None,
        strategy_code: Optional[str] = None,
    ) -> AsyncIterator[BatchPricingItem]:
        """Price every input independently, yielding items as they complete.

        The strategy is loaded before anything is scheduled, so a missing
        strategy raises here instead of producing per-input errors.
        """
        code = strategy_code or self.settings.default_strategy_code
        strategy = self.strategy_store.load_strategy(code)
        return self._stream(list(inputs), strategy, requested_days)

    async def _stream(self, inputs: List[PricingRequest], strategy, requested_days: Optional[int]):
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.settings.stream_queue_size)
        semaphore = asyncio.Semaphore(self.settings.batch_max_concurrency)

        async def run_one(index: int, request: PricingRequest):
            async with semaphore:
                item = await asyncio.to_thread(self._price_item, index, request, strategy, requested_days)
            await queue.put(item)

        self.logger.info("Batch pricing started", inputs=len(inputs), strategy_code=strategy.code)
        tasks = [asyncio.create_task(run_one(index, request)) for index, request in enumerate(inputs)]
        failed = 0
        try:
            for _ in range(len(tasks)):
                item = await queue.get()
                if not item.ok:
                    failed += 1
                yield item
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                self.logger.info("Batch pricing cancelled", cancelled=len(pending))
            else:
                self.logger.info("Batch pricing finished", inputs=len(inputs), failed=failed)

    def _price_item(self, index: int, request: PricingRequest, strategy, requested_days: Optional[int]) -> BatchPricingItem:
        try:
            result = self.pricer.price(request, strategy, requested_days=requested_days)
            return BatchPricingItem(index=index, input=request, result=result)
        except PricingEngineException as e:
            return BatchPricingItem(index=index, input=request, error=e.to_response())
        except Exception as e:
            self.logger.error("Unexpected pricing error", index=index, error=str(e), exc_info=True)
            wrapped = CalculationFailed(f"Unexpected error: {e}")
            return BatchPricingItem(index=index, input=request, error=wrapped.to_response())

    def stream_steps(
        self,
        request: PricingRequest,
        strategy_code: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AsyncIterator[PricingStepUpdate]:
        """Stream the steps of one pricing run as they are applied, then the final breakdown."""
        code = strategy_code or self.settings.default_strategy_code
        strategy = self.strategy_store.load_strategy(code)
        return self._stream_steps(request, strategy, correlation_id or set_correlation_id())

    async def _stream_steps(self, request: PricingRequest, strategy, correlation_id: str):
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_step(step: PricingStep):
            _publish(loop, queue, step)

        def run():
            try:
                return self.pricer.price(request, strategy, on_step=on_step)
            finally:
                _publish(loop, queue, _DONE)

        task = asyncio.create_task(asyncio.to_thread(run))
        completed = 0
        try:
            while True:
                step = await queue.get()
                if step is _DONE:
                    break
                completed += 1
                yield PricingStepUpdate(correlation_id=correlation_id, step=step, completed_steps=completed)

            try:
                result = await task
            except PricingEngineException as e:
                yield PricingStepUpdate(
                    correlation_id=correlation_id,
                    is_complete=True,
                    completed_steps=completed,
                    error=e.to_response(correlation_id),
                )
                return
            except Exception as e:
                self.logger.error("Unexpected pricing error", correlation_id=correlation_id, error=str(e), exc_info=True)
                wrapped = CalculationFailed(f"Unexpected error: {e}")
                yield PricingStepUpdate(
                    correlation_id=correlation_id,
                    is_complete=True,
                    completed_steps=completed,
                    error=wrapped.to_response(correlation_id),
                )
                return
            yield PricingStepUpdate(
                correlation_id=correlation_id,
                is_complete=True,
                completed_steps=completed,
                final_breakdown=result,
            )
        finally:
            if not task.done():
                task.cancel()
