import asyncio
from concurrent.futures import ThreadPoolExecutor

IO_POOL_VAL = ThreadPoolExecutor(max_workers=8)


def run_sync(func, *args, **kwargs):
    """
    Run blocking / CPU-heavy / IO-heavy code off the current event loop.
    Used for:
    - FAISS index load, write and similarity search
    - Embedding calls
    - LLM calls (LangChain)
    - PDF loading
    """
    loop = asyncio.get_running_loop()
    return loop.run_in_executor(IO_POOL_VAL, lambda: func(*args, **kwargs))


async def run_sync_with_timeout(timeout: float | None, func, *args, **kwargs):
    """
    Same as run_sync but gives up after `timeout` seconds with
    asyncio.TimeoutError. The worker thread is not interrupted; its result
    is discarded. Until the call returns it keeps one of the IO_POOL_VAL
    workers, so blocking calls run through here need their own timeout too
    (model clients get one in ModelLoader.load_llm).
    """
    return await asyncio.wait_for(run_sync(func, *args, **kwargs), timeout=timeout)
