"""Batch planning, pairing and the per-batch worker pool."""

import itertools
import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path

from diskcache import Cache  # type: ignore[import-untyped]

from metarr import op_parsing
from metarr.config import Settings
from metarr.edit_ops import MetaEditor
from metarr.exceptions import (
    Cancelled,
    ConfigError,
    MetarrError,
    PairingError,
    ProcessingError,
)
from metarr.executor import VideoExecutor
from metarr.field_fill import FieldFiller
from metarr.file_utils import (
    list_sidecars,
    list_videos,
    match_videos_to_sidecars,
    matches,
    sidecar_kind,
)
from metarr.filename_ops import FileRenamer
from metarr.models import BatchResult, FileData, ProcessResult, VideoProcessResult
from metarr.prompt import OverwritePrompter, OverwriteState
from metarr.resources import ResourceGate
from metarr.scraper import HttpScraper, Scraper
from metarr.sidecar_io import lock_for
from metarr.sidecars import open_sidecar
from metarr.thumbnails import ThumbnailFetcher

logger = logging.getLogger(__name__)

Pair = tuple[Path | None, Path]


@dataclass(frozen=True)
class Batch:
    """One unit of work: a video source paired with a sidecar source.

    ``video_source`` is None for metadata-only batches. ``meta_source`` is
    None when sidecars are looked up beside the videos.
    """

    batch_id: int
    video_source: Path | None
    meta_source: Path | None
    is_dir: bool
    skip_videos: bool = False


def _classify(
    dirs: list[Path], files: list[Path], label: str
) -> tuple[list[Path], list[Path]]:
    """Sort user supplied paths into directories and files by what they are.

    Raises:
        ConfigError: If a path does not exist
    """
    out_dirs: list[Path] = []
    out_files: list[Path] = []
    for path in [*dirs, *files]:
        if not path.exists():
            raise ConfigError(f"{label} path does not exist: {path}")
    for path in dirs:
        if path.is_dir():
            out_dirs.append(path)
        else:
            logger.warning(f"{label} directory {path} is a file, treating it as one")
            out_files.append(path)
    for path in files:
        if path.is_dir():
            logger.warning(f"{label} file {path} is a directory, treating it as one")
            out_dirs.append(path)
        else:
            out_files.append(path)
    return out_dirs, out_files


class BatchOrchestrator:
    """Plans batches and runs them one after another.

    Collaborators shared by every batch (scraper, thumbnail downloader,
    overwrite prompt state, resource gate) are created here once.
    """

    def __init__(
        self,
        settings: Settings,
        cancel_event: threading.Event | None = None,
        scraper: Scraper | None = None,
        executor: VideoExecutor | None = None,
        prompter: OverwritePrompter | None = None,
    ):
        self.settings = settings
        self.cancel_event = cancel_event or threading.Event()
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()

        self.meta_ops = op_parsing.build_meta_ops(settings)
        self.filename_ops = op_parsing.build_filename_ops(settings)
        overrides = op_parsing.build_override_maps(settings)

        self.cache: Cache | None = None
        self._http_scraper: HttpScraper | None = None
        if scraper is None:
            self.cache = Cache(str(settings.cache_dir))
            self._http_scraper = HttpScraper(settings, self.cache)
            scraper = self._http_scraper

        self.thumbnails: ThumbnailFetcher | None = None
        if executor is None:
            if not settings.strip_thumbnails:
                self.thumbnails = ThumbnailFetcher(timeout=settings.scrape_timeout)
            executor = VideoExecutor(
                settings, thumbnails=self.thumbnails, cancel_event=self.cancel_event
            )

        self.filler = FieldFiller(
            scraper,
            overrides,
            desc_date_prefix=settings.desc_date_prefix,
            desc_date_suffix=settings.desc_date_suffix,
        )
        self.overwrite_state = OverwriteState(
            settings.meta_overwrite, settings.meta_preserve
        )
        self.editor = MetaEditor(
            prompter or OverwritePrompter(self.overwrite_state, self.cancel_event)
        )
        self.executor = executor
        self.renamer = FileRenamer(settings, self.filename_ops)
        self.gate = ResourceGate(
            settings.min_free_mem_mb, settings.max_cpu, self.cancel_event
        )

    def next_batch_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def plan(self) -> list[Batch]:
        """Build the batch list from the configured inputs.

        Video and sidecar directories pair by position, as do files.
        Sidecar entries left over become metadata-only batches.

        Raises:
            ConfigError: If an input path does not exist
        """
        s = self.settings
        video_dirs, video_files = _classify(s.video_dirs, s.video_files, "Video")
        meta_dirs, meta_files = _classify(s.meta_dirs, s.meta_files, "Metadata")

        batches: list[Batch] = []
        for i, video_dir in enumerate(video_dirs):
            meta_dir = meta_dirs[i] if i < len(meta_dirs) else None
            batches.append(
                Batch(
                    self.next_batch_id(),
                    video_dir,
                    meta_dir,
                    is_dir=True,
                    skip_videos=s.skip_videos,
                )
            )
        for meta_dir in meta_dirs[len(video_dirs) :]:
            batches.append(
                Batch(self.next_batch_id(), None, meta_dir, True, skip_videos=True)
            )

        for i, video_file in enumerate(video_files):
            meta_file = meta_files[i] if i < len(meta_files) else None
            batches.append(
                Batch(
                    self.next_batch_id(),
                    video_file,
                    meta_file,
                    is_dir=False,
                    skip_videos=s.skip_videos,
                )
            )
        for meta_file in meta_files[len(video_files) :]:
            batches.append(
                Batch(self.next_batch_id(), None, meta_file, False, skip_videos=True)
            )

        logger.info(
            f"Got {len(batches)} batch jobs "
            f"({len(video_dirs)} directory pairs, {len(video_files)} file pairs)"
        )
        return batches

    def pair(self, batch: Batch) -> list[Pair]:
        """Resolve a batch into (video, sidecar) pairs.

        Raises:
            PairingError: If nothing in the batch could be paired
        """
        s = self.settings
        if batch.video_source is None:
            assert batch.meta_source is not None
            sidecars = (
                list_sidecars(batch.meta_source)
                if batch.is_dir
                else [batch.meta_source]
            )
            if not sidecars:
                raise PairingError(f"No sidecars found in {batch.meta_source}")
            return [(None, sidecar) for sidecar in sidecars]

        if batch.is_dir:
            videos = list_videos(
                batch.video_source,
                s.input_exts,
                s.filter_prefixes,
                s.filter_contains,
                s.filter_omit,
            )
            sidecar_dir = batch.meta_source or batch.video_source
            pairs = match_videos_to_sidecars(videos, list_sidecars(sidecar_dir))
            if not pairs:
                raise PairingError(
                    f"No sidecar in {sidecar_dir} matches any of the "
                    f"{len(videos)} videos in {batch.video_source}"
                )
            logger.info(
                f"Matched {len(pairs)} of {len(videos)} videos "
                f"in {batch.video_source}"
            )
            return list(pairs)

        video = batch.video_source
        if batch.meta_source is not None:
            if not matches(video, batch.meta_source):
                logger.warning(
                    f"{batch.meta_source.name} does not look like the sidecar "
                    f"of {video.name}, pairing them as requested"
                )
            return [(video, batch.meta_source)]
        found = match_videos_to_sidecars([video], list_sidecars(video.parent))
        if not found:
            raise PairingError(f"No sidecar found beside {video}")
        return list(found)

    def run(self) -> list[BatchResult]:
        """Run every planned batch in order.

        A batch whose pairing fails is recorded and skipped; cancellation
        stops before the next batch starts.
        """
        results: list[BatchResult] = []
        for batch in self.plan():
            if self.cancel_event.is_set():
                logger.info("Cancellation requested, skipping remaining batches")
                break
            logger.info(
                f"Starting batch {batch.batch_id} "
                f"(skip videos: {batch.skip_videos})"
            )
            try:
                pairs = self.pair(batch)
            except (PairingError, OSError) as e:
                logger.error(f"Batch {batch.batch_id} failed: {e}")
                results.append(BatchResult(batch.batch_id, error=e))
                continue
            results.append(BatchProcessor(self, batch).run(pairs))
        return results

    def close(self) -> None:
        """Close HTTP clients and the page cache."""
        if self._http_scraper is not None:
            self._http_scraper.close()
        if self.thumbnails is not None:
            self.thumbnails.close()
        if self.cache is not None:
            self.cache.close()


class BatchProcessor:
    """Runs one batch on a bounded worker pool and gathers its failures."""

    def __init__(self, orchestrator: BatchOrchestrator, batch: Batch):
        self.orchestrator = orchestrator
        self.settings = orchestrator.settings
        self.cancel_event = orchestrator.cancel_event
        self.batch = batch
        self.results: list[ProcessResult] = []
        self.failures: list[Exception] = []
        self._failures_lock = threading.Lock()

    def add_failure(self, failure: Exception) -> None:
        with self._failures_lock:
            self.failures.append(failure)

    def process_file(self, video: Path | None, sidecar: Path) -> ProcessResult:
        """Fill, edit, embed and rename one pair.

        Raises:
            Cancelled: If cancellation is requested at a safe point
            MetarrError: On any sidecar, FFmpeg or relocation failure
        """
        orch = self.orchestrator
        name = (video or sidecar).name
        orch.gate.wait(name)

        kind = sidecar_kind(sidecar)
        if kind is None:
            raise PairingError(f"{sidecar.name} is not a sidecar")
        fd = FileData(
            video_path=video or sidecar,
            sidecar_path=sidecar,
            sidecar_kind=kind,
            meta_ops=orch.meta_ops,
            filename_ops=orch.filename_ops,
        )

        # Two videos can share one sidecar; hold it for the whole cycle
        with lock_for(sidecar), open_sidecar(
            sidecar, self.settings.no_file_overwrite, self.cancel_event
        ) as rw:
            rw.decode()
            modified = orch.filler.fill(fd, rw)
            edited = orch.editor.apply_meta_edits(fd, rw)
            edited |= orch.editor.apply_date_tags(fd, rw)
            if edited:
                orch.filler.fill(fd, rw, write_back=False)
            fields = rw.string_fields()
        modified |= edited

        if self.cancel_event.is_set():
            raise Cancelled(f"Cancelled after updating {sidecar.name}")

        final_video = video
        video_result: VideoProcessResult | None = None
        if video is not None and not self.batch.skip_videos:
            video_result = orch.executor.execute(fd)
            final_video = video_result.final_path or video

        final_video, _ = orch.renamer.finalize(fd, final_video, sidecar, fields)

        if video_result is None:
            return VideoProcessResult(
                success=True,
                file_path=sidecar,
                message="Metadata updated" if modified else "Metadata unchanged",
                file_modified=modified,
                final_path=final_video,
            )
        video_result.final_path = final_video
        video_result.file_modified |= modified
        return video_result

    def _handle(self, video: Path | None, sidecar: Path) -> ProcessResult:
        path = video or sidecar
        try:
            return self.process_file(video, sidecar)
        except Cancelled as e:
            logger.info(f"👋 {path.name}: {e}")
            return ProcessResult(False, path, "Cancelled", exception=e)
        except (MetarrError, OSError) as e:
            failure = ProcessingError(path, e)
            failure.__cause__ = e
            logger.error(f"❌ Failed to process {path.name}: {e}")
        except Exception as e:
            failure = ProcessingError(path, e)
            failure.__cause__ = e
            logger.exception(f"❌ Unexpected error processing {path.name}: {e}")
        self.add_failure(failure)
        return ProcessResult(False, path, str(failure), exception=failure)

    def _worker(
        self,
        jobs: "queue.Queue[Pair | None]",
        results: "queue.Queue[ProcessResult | None]",
    ) -> None:
        try:
            while True:
                job = jobs.get()
                if job is None:
                    break
                if self.cancel_event.is_set():
                    # Keep draining so the producer never blocks
                    continue
                video, sidecar = job
                results.put(self._handle(video, sidecar))
        finally:
            results.put(None)

    def _collect(
        self, results: "queue.Queue[ProcessResult | None]", workers: int
    ) -> None:
        finished = 0
        while finished < workers:
            result = results.get()
            if result is None:
                finished += 1
                continue
            self.results.append(result)
            if result.success:
                logger.info(f"✅ {result.message} - {result.file_path.name}")

    def run(self, pairs: list[Pair]) -> BatchResult:
        """Process ``pairs`` concurrently and report the batch outcome."""
        workers = max(min(self.settings.concurrency, len(pairs)), 1)
        jobs: queue.Queue[Pair | None] = queue.Queue(
            maxsize=max(min(len(pairs), 2 * workers), 1)
        )
        results: queue.Queue[ProcessResult | None] = queue.Queue()

        threads = [
            threading.Thread(
                target=self._worker,
                args=(jobs, results),
                name=f"metarr-batch{self.batch.batch_id}-worker{n}",
                daemon=True,
            )
            for n in range(workers)
        ]
        collector = threading.Thread(
            target=self._collect, args=(results, workers), daemon=True
        )
        collector.start()
        for thread in threads:
            thread.start()

        for pair in pairs:
            if self.cancel_event.is_set():
                break
            jobs.put(pair)
        for _ in threads:
            jobs.put(None)

        for thread in threads:
            thread.join()
        collector.join()

        self._log_failures()
        return BatchResult(self.batch.batch_id, self.results, list(self.failures))

    def _log_failures(self) -> None:
        if not self.failures:
            logger.info(
                f"Batch {self.batch.batch_id} processed "
                f"{len(self.results)} files with no errors"
            )
            return
        logger.error(
            f"Batch {self.batch.batch_id} finished, "
            f"but {len(self.failures)} files failed:"
        )
        for failure in self.failures:
            logger.error(f"  {failure}")
