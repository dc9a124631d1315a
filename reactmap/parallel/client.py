# Copyright 2019-2025, Relay Therapeutics
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import multiprocessing
from abc import ABC, abstractmethod
from concurrent import futures
from typing import Any, Optional
from uuid import uuid4

from reactmap.parallel.utils import get_cpu_count

# The clients in this file give a common submit/result API to inline, threaded and multiprocess
# execution, so that matching tasks can be run without knowing which one is in use.


class BaseFuture(ABC):
    @abstractmethod
    def done(self) -> bool: ...

    @abstractmethod
    def result(self) -> Any: ...

    @property
    @abstractmethod
    def id(self) -> str: ...

    @property
    @abstractmethod
    def name(self) -> str: ...


class AbstractClient:
    def __init__(self):
        self.max_workers = 1

    def submit(self, task_fn, *args, **kwargs) -> BaseFuture:
        """
        Submit is an asynchronous method that will launch task_fn whose
        results will be collected at a later point in time. For process based
        clients task_fn and its arguments must be picklable.

        Parameters
        ----------
        task_fn: callable
            A python function to be called

        args: list
            list of arguments for task_fn


        Returns
        -------
        Future
            A deferred object with a .result() method, which re-raises any
            exception raised by task_fn.

        Usage:

        client = ConcreteClient()

        futures = []
        for arg in args:
            fut = client.submit(task_fn, arg)
            futures.append(fut)

        res = []
        for fut in futures:
            res.append(fut.result())

        """
        raise NotImplementedError()

    def verify(self):
        """Verify performs any necessary checks to verify the client is ready to
        handle calls to submit.

        Raises
        ------
        Exception
            If verification fails
        """
        raise NotImplementedError()

    def shutdown(self):
        """Release the workers, waiting for submitted jobs to finish"""
        return


class _MockFuture(BaseFuture):
    __slots__ = ("_id", "val", "exc")

    def __init__(self, val, exc: Optional[BaseException] = None):
        self.val = val
        self.exc = exc
        self._id = str(uuid4())

    def result(self) -> Any:
        if self.exc is not None:
            raise self.exc
        return self.val

    def done(self) -> bool:
        return True

    @property
    def id(self) -> str:
        """
        Return the id as a str for this subjob
        """
        return self._id

    @property
    def name(self) -> str:
        return self._id


class WrappedFuture(BaseFuture):
    def __init__(self, future, job_id: str):
        self._future = future
        self._id = job_id

    def result(self) -> Any:
        return self._future.result()

    def done(self) -> bool:
        return self._future.done()

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._id


class SerialClient(AbstractClient):
    def submit(self, task_fn, *args, **kwargs) -> BaseFuture:
        # Errors are deferred to result(), as with the pool clients
        try:
            return _MockFuture(task_fn(*args, **kwargs))
        except Exception as e:
            return _MockFuture(None, exc=e)

    def verify(self):
        return


class _ExecutorClient(AbstractClient):
    def __init__(self, executor, max_workers: int):
        self.max_workers = max_workers
        self._total_idx = 0
        self.executor = executor

    def submit(self, task_fn, *args, **kwargs) -> BaseFuture:
        """
        See abstract class for documentation.
        """
        future = self.executor.submit(task_fn, *args, **kwargs)
        job_id = str(self._total_idx)
        self._total_idx += 1
        return WrappedFuture(future, job_id)

    def verify(self):
        """
        See abstract class for documentation.
        """
        assert self.max_workers > 0, f"Invalid number of workers: {self.max_workers}"

    def shutdown(self):
        self.executor.shutdown(wait=True)


class ThreadPoolClient(_ExecutorClient):
    def __init__(self, max_workers: Optional[int] = None):
        """
        Wrapper around ThreadPoolExecutor. Jobs share the memory of the calling process, so a
        ResultCache handed to every job is shared by all of them.

        Parameters
        ----------
        max_workers: int or None
            Number of threads, defaults to the number of available cores
        """
        max_workers = max_workers or get_cpu_count()
        super().__init__(futures.ThreadPoolExecutor(max_workers=max_workers), max_workers)

    def __getstate__(self):
        # Only store the max workers in the pickle
        return (self.max_workers,)

    def __setstate__(self, state):
        self.__init__(state[0])


class ProcessPoolClient(_ExecutorClient):
    def __init__(self, max_workers: Optional[int] = None):
        """
        Wrapper around ProcessPoolExecutor, using the spawn start method. Each job works on
        a pickled copy of its arguments, so a ResultCache handed to the jobs is not shared
        between them and is not updated in the calling process.

        Parameters
        ----------
        max_workers: int or None
            Number of workers to launch, defaults to the number of available cores
        """
        max_workers = max_workers or get_cpu_count()
        ctxt = multiprocessing.get_context("spawn")
        super().__init__(futures.ProcessPoolExecutor(max_workers=max_workers, mp_context=ctxt), max_workers)

    def __getstate__(self):
        # Only store the max workers in the pickle
        return (self.max_workers,)

    def __setstate__(self, state):
        self.__init__(state[0])
