"""
Compute Engine Architecture
===========================

The compute engine applies a per-image function to every image of an
:class:`~container_models.image.ImageArray` using a bounded pool of worker
threads. One task is submitted per image; each task runs to completion and
every call joins all of its tasks before returning.

Three contracts are offered:

+-------------+-----------------------------+-----------------------------+
| Contract    | Per-image function          | Result                      |
+=============+=============================+=============================+
| compute     | reads the image, returns a  | ``ResultE[A]``: partials    |
|             | partial result              | folded with ``merge``       |
+-------------+-----------------------------+-----------------------------+
| process     | mutates the image in place  | ``ResultE[ImageArray]``:    |
|             |                             | the same collection         |
+-------------+-----------------------------+-----------------------------+
| transform   | mutates a deep copy         | ``ResultE[ImageArray]``:    |
|             |                             | a new collection            |
+-------------+-----------------------------+-----------------------------+

Compute has a reduce phase: ``merge`` runs on the calling thread only, in
task completion order, so merges need no lock but must be commutative and
associative.

Failures are aggregated into a :class:`~exceptions.ComputeTaskFailure`.
Process is not transactional: when one task fails, the mutations made by the
tasks that succeeded are kept.

Example
-------

    engine = ComputeEngine(max_workers=4)
    extremes = engine.compute(
        image_array,
        lambda image, context: (image.data.min(), image.data.max()),
        lambda acc, part: (min(acc[0], part[0]), max(acc[1], part[1])),
        (np.inf, -np.inf),
    ).unwrap()
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from typing import Final

from loguru import logger
from returns.result import Failure, ResultE, Success

from compute.regions import region_mask
from compute.types import ComputeFunction, Merge, ProcessFunction, TaskContext
from container_models import ContourCollection, ImageArray, PlanarImage
from exceptions import ComputeTaskFailure
from settings import get_settings
from utils.logger import log_railway_function

_SKIPPED: Final = object()


@contextmanager
def _read_only(image: PlanarImage):
    writeable = image.data.flags.writeable
    image.data.setflags(write=False)
    try:
        yield image
    finally:
        if writeable:
            image.data.setflags(write=True)


class ComputeEngine:
    """
    Dispatches per-image functions over a worker pool.

    :param max_workers: Size of the pool created for each call. Defaults to the
        configured ``max_workers`` setting.
    """

    def __init__(self, max_workers: int | None = None) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers or get_settings().max_workers

    def _context(
        self,
        index: int,
        image: PlanarImage,
        aux: tuple[ImageArray, ...],
        regions: tuple[ContourCollection, ...],
    ) -> TaskContext | None:
        if image.rows < 1 or image.columns < 1:
            raise ValueError(f"Image has no pixels (shape {image.data.shape})")
        mask = region_mask(image, regions)
        if mask is not None and not mask.any():
            return None
        return TaskContext(index=index, aux=aux, regions=regions, mask=mask)

    def _dispatch[T](
        self,
        images: ImageArray,
        task: Callable[[int, PlanarImage], T],
    ) -> tuple[dict[int, T], dict[int, BaseException]]:
        """Run `task` for every image and join. :returns: Results and failures keyed by image index."""
        results: dict[int, T] = {}
        failures: dict[int, BaseException] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures: dict[Future[T], int] = {
                pool.submit(task, index, image): index
                for index, image in enumerate(images.images)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as error:
                    logger.debug(f"Task for image {index} failed: {error!r}")
                    failures[index] = error
        logger.debug(
            f"Joined {len(futures)} task(s) on {self.max_workers} worker(s), "
            f"{len(failures)} failed"
        )
        return results, failures

    @log_railway_function("Compute over image array failed")
    def compute[A, P](
        self,
        images: ImageArray,
        fn: ComputeFunction[P],
        merge: Merge[A, P],
        accumulator: A,
        *,
        aux: Sequence[ImageArray] = (),
        regions: Sequence[ContourCollection] = (),
    ) -> ResultE[A]:
        """
        Fold a read-only function over every eligible image.

        :param images: The primary image array. Not modified.
        :param fn: Per-image function returning a partial result.
        :param merge: Folds a partial result into the accumulator.
        :param accumulator: The initial accumulator value.
        :param aux: Auxiliary image arrays passed to every task.
        :param regions: Restrict the computation to images cut by these contours.
        :returns: The final accumulator, or a `ComputeTaskFailure`.
        """
        aux, regions = tuple(aux), tuple(regions)

        def task(index: int, image: PlanarImage) -> object:
            if (context := self._context(index, image, aux, regions)) is None:
                return _SKIPPED
            with _read_only(image):
                return fn(image, context)

        results, failures = self._dispatch(images, task)
        if failures:
            return Failure(ComputeTaskFailure(failures))
        for index in results:
            if (partial := results[index]) is not _SKIPPED:
                accumulator = merge(accumulator, partial)  # type: ignore[arg-type]
        return Success(accumulator)

    @log_railway_function("Processing image array failed")
    def process(
        self,
        images: ImageArray,
        fn: ProcessFunction,
        *,
        aux: Sequence[ImageArray] = (),
        regions: Sequence[ContourCollection] = (),
    ) -> ResultE[ImageArray]:
        """
        Mutate every eligible image of `images` in place.

        Mutations of tasks that succeed are kept even when other tasks fail.

        :param images: The image array to mutate.
        :param fn: Per-image function mutating (or replacing) the image.
        :param aux: Auxiliary image arrays passed to every task.
        :param regions: Restrict processing to images cut by these contours.
        :returns: `images` itself, or a `ComputeTaskFailure`.
        """
        aux, regions = tuple(aux), tuple(regions)

        def task(index: int, image: PlanarImage) -> PlanarImage:
            if (context := self._context(index, image, aux, regions)) is None:
                return image
            result = fn(image, context)
            return image if result is None else result

        results, failures = self._dispatch(images, task)
        for index, image in results.items():
            if image is not images.images[index]:
                images.images[index] = image
        if failures:
            return Failure(ComputeTaskFailure(failures))
        return Success(images)

    @log_railway_function("Transforming image array failed")
    def transform(
        self,
        images: ImageArray,
        fn: ProcessFunction,
        *,
        aux: Sequence[ImageArray] = (),
        regions: Sequence[ContourCollection] = (),
    ) -> ResultE[ImageArray]:
        """
        Apply `fn` to deep copies of the images, leaving `images` untouched.

        Images that are not cut by `regions` are copied unchanged.

        :returns: A new image array with a copy of the source metadata, or a
            `ComputeTaskFailure`.
        """
        aux, regions = tuple(aux), tuple(regions)

        def task(index: int, image: PlanarImage) -> PlanarImage:
            copy = image.model_copy(deep=True)
            if (context := self._context(index, copy, aux, regions)) is None:
                return copy
            result = fn(copy, context)
            return copy if result is None else result

        results, failures = self._dispatch(images, task)
        if failures:
            return Failure(ComputeTaskFailure(failures))
        return Success(
            ImageArray(
                images=[results[index] for index in range(len(images))],
                metadata=dict(images.metadata),
            )
        )
