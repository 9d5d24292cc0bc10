"""Data models for metarr."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class SidecarKind(str, Enum):
    """Sidecar file format."""

    JSON = "json"
    NFO = "nfo"


class DateTagLocation(str, Enum):
    """Where a date tag sits inside a field or filename."""

    PREFIX = "prefix"
    SUFFIX = "suffix"
    ALL = "all"  # only meaningful when deleting tags


class DateFormat(str, Enum):
    """Component ordering used when rendering a date tag."""

    YYYY_MM_DD = "yyyy-mm-dd"
    YY_MM_DD = "yy-mm-dd"
    YYYY_DD_MM = "yyyy-dd-mm"
    YY_DD_MM = "yy-dd-mm"
    DD_MM_YYYY = "dd-mm-yyyy"
    DD_MM_YY = "dd-mm-yy"
    MM_DD_YYYY = "mm-dd-yyyy"
    MM_DD_YY = "mm-dd-yy"
    SKIP = "skip"

    @property
    def short_year(self) -> bool:
        return self.value.count("y") == 2

    @classmethod
    def parse(cls, value: str) -> "DateFormat":
        """Parse a format name such as ``YYYY-MM-DD`` or the short ``Ymd`` form.

        Args:
            value: User supplied format string

        Returns:
            Matching DateFormat

        Raises:
            ValueError: If the format is unknown
        """
        normalized = value.strip()
        if normalized in _SHORT_DATE_FORMATS:
            return _SHORT_DATE_FORMATS[normalized]
        try:
            return cls(normalized.lower().replace("_", "-"))
        except ValueError:
            raise ValueError(f"Unknown date format: {value!r}") from None


_SHORT_DATE_FORMATS: dict[str, DateFormat] = {
    "Ymd": DateFormat.YYYY_MM_DD,
    "ymd": DateFormat.YY_MM_DD,
    "Ydm": DateFormat.YYYY_DD_MM,
    "ydm": DateFormat.YY_DD_MM,
    "dmY": DateFormat.DD_MM_YYYY,
    "dmy": DateFormat.DD_MM_YY,
    "mdY": DateFormat.MM_DD_YYYY,
    "mdy": DateFormat.MM_DD_YY,
}


class WebClass(str, Enum):
    """Kind of value requested from a scraper."""

    TITLE = "title"
    DESCRIPTION = "description"
    CREDITS = "credits"
    DATE = "date"


class OverrideCategory(str, Enum):
    """Metadata category targeted by an override map entry."""

    CREDITS = "credits"


class AccelType(str, Enum):
    """Hardware acceleration back-ends."""

    AUTO = "auto"
    NVIDIA = "nvidia"
    QSV = "qsv"
    VAAPI = "vaapi"
    AMF = "amf"


# Credit fields in fill priority order
CREDIT_FIELDS: tuple[str, ...] = (
    "creator",
    "performer",
    "author",
    "artist",
    "channel",
    "director",
    "actor",
    "studio",
    "producer",
    "writer",
    "uploader",
    "publisher",
    "composer",
)


@dataclass
class TitleFields:
    """Title and description group."""

    title: str = ""
    fulltitle: str = ""
    subtitle: str = ""
    description: str = ""
    long_description: str = ""  # "long-description" in sidecars
    long_underscore_description: str = ""  # "long_description" in sidecars
    synopsis: str = ""
    summary: str = ""
    comment: str = ""


@dataclass
class CreditFields:
    """Credits group: singular values plus parallel ordered lists."""

    creator: str = ""
    performer: str = ""
    author: str = ""
    artist: str = ""
    channel: str = ""
    director: str = ""
    actor: str = ""
    studio: str = ""
    producer: str = ""
    writer: str = ""
    uploader: str = ""
    publisher: str = ""
    composer: str = ""
    lists: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class DateFields:
    """Dates group."""

    upload_date: str = ""
    release_date: str = ""
    date: str = ""
    year: str = ""
    originally_available_at: str = ""
    creation_time: str = ""
    formatted_date: str = ""
    string_date: str = ""


@dataclass
class WebFields:
    """Web group."""

    webpage_url: str = ""
    video_url: str = ""
    domain: str = ""
    referer: str = ""
    thumbnail: str = ""
    try_urls: list[str] = field(default_factory=list)


@dataclass
class ShowFields:
    """TV show group."""

    show: str = ""
    episode_id: str = ""
    episode_sort: str = ""
    season_number: str = ""
    season_title: str = ""


@dataclass
class OtherFields:
    """Remaining container tags."""

    language: str = ""
    genre: str = ""
    hd_video: str = ""


@dataclass(frozen=True)
class MetaSet:
    field: str
    value: str


@dataclass(frozen=True)
class CopyToField:
    field: str
    dest: str


@dataclass(frozen=True)
class PasteFromField:
    field: str
    origin: str


@dataclass(frozen=True)
class MetaReplace:
    field: str
    find: str
    replacement: str


@dataclass(frozen=True)
class MetaReplacePrefix:
    field: str
    prefix: str
    replacement: str


@dataclass(frozen=True)
class MetaReplaceSuffix:
    field: str
    suffix: str
    replacement: str


@dataclass(frozen=True)
class MetaPrefix:
    field: str
    prefix: str


@dataclass(frozen=True)
class MetaAppend:
    field: str
    suffix: str


@dataclass(frozen=True)
class MetaDateTag:
    location: DateTagLocation
    format: DateFormat


@dataclass(frozen=True)
class MetaDeleteDateTag:
    location: DateTagLocation
    format: DateFormat


@dataclass(frozen=True)
class TextReplace:
    find: str
    replacement: str


@dataclass
class MetaOps:
    """User requested sidecar edits."""

    set_fields: list[MetaSet] = field(default_factory=list)
    copy_to: list[CopyToField] = field(default_factory=list)
    paste_from: list[PasteFromField] = field(default_factory=list)
    replaces: list[MetaReplace] = field(default_factory=list)
    replace_prefixes: list[MetaReplacePrefix] = field(default_factory=list)
    replace_suffixes: list[MetaReplaceSuffix] = field(default_factory=list)
    prefixes: list[MetaPrefix] = field(default_factory=list)
    appends: list[MetaAppend] = field(default_factory=list)
    date_tags: dict[str, MetaDateTag] = field(default_factory=dict)
    delete_date_tags: dict[str, MetaDeleteDateTag] = field(default_factory=dict)

    def has_primary_edits(self) -> bool:
        return any(
            (
                self.set_fields,
                self.copy_to,
                self.paste_from,
                self.replaces,
                self.replace_prefixes,
                self.replace_suffixes,
                self.prefixes,
                self.appends,
            )
        )


@dataclass
class FilenameOps:
    """User requested filename transformations."""

    date_tag: MetaDateTag | None = None
    delete_date_tag: MetaDeleteDateTag | None = None
    set_name: str = ""
    prefixes: list[str] = field(default_factory=list)
    appends: list[str] = field(default_factory=list)
    replaces: list[TextReplace] = field(default_factory=list)
    replace_prefixes: list[TextReplace] = field(default_factory=list)
    replace_suffixes: list[TextReplace] = field(default_factory=list)
    metadata_prefix_fields: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (
                self.date_tag,
                self.delete_date_tag,
                self.set_name,
                self.prefixes,
                self.appends,
                self.replaces,
                self.replace_prefixes,
                self.replace_suffixes,
                self.metadata_prefix_fields,
            )
        )


@dataclass
class OverrideMaps:
    """Category keyed set/replace/append overrides."""

    set: dict[OverrideCategory, str] = field(default_factory=dict)
    replace: dict[OverrideCategory, TextReplace] = field(default_factory=dict)
    append: dict[OverrideCategory, str] = field(default_factory=dict)


@dataclass
class FileData:
    """Per-video record owned by the worker that processes it."""

    # Paths
    video_path: Path
    sidecar_path: Path
    sidecar_kind: SidecarKind
    temp_output_path: Path | None = None
    final_output_path: Path | None = None
    renamed_video_path: Path | None = None
    renamed_sidecar_path: Path | None = None

    # Metadata groups
    titles: TitleFields = field(default_factory=TitleFields)
    credits: CreditFields = field(default_factory=CreditFields)
    dates: DateFields = field(default_factory=DateFields)
    web: WebFields = field(default_factory=WebFields)
    show: ShowFields = field(default_factory=ShowFields)
    other: OtherFields = field(default_factory=OtherFields)

    # Requested edits
    meta_ops: MetaOps = field(default_factory=MetaOps)
    filename_ops: FilenameOps = field(default_factory=FilenameOps)

    # Flags
    meta_already_exists: bool = False
    model_overwrite: bool = False
    has_embedded_thumbnail: bool = False

    @property
    def video_dir(self) -> Path:
        return self.video_path.parent


@dataclass
class ProcessResult:
    """Base result of processing a file."""

    success: bool
    file_path: Path
    message: str
    exception: Exception | None = None
    backup_created: bool = False
    file_modified: bool = False


@dataclass
class VideoProcessResult(ProcessResult):
    """Result of processing one video/sidecar pair."""

    meta_already_exists: bool = False
    ffmpeg_ran: bool = False
    final_path: Path | None = None


@dataclass
class BatchResult:
    """Outcome of a single batch."""

    batch_id: int
    results: list[ProcessResult] = field(default_factory=list)
    failures: list[Exception] = field(default_factory=list)
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None or (
            bool(self.failures) and len(self.failures) >= len(self.results)
        )


@dataclass
class NfoTitle:
    main: str = ""
    original: str = ""
    sort: str = ""
    sub: str = ""
    plain_text: str = ""  # for non-nested <title>text</title>


@dataclass
class NfoPerson:
    name: str = ""
    role: str = ""


@dataclass
class NfoShowInfo:
    show: str = ""
    season_number: str = ""
    episode_id: str = ""
    episode_title: str = ""


@dataclass
class NfoData:
    """Typed view of a Kodi-style ``<movie>`` NFO document."""

    title: NfoTitle = field(default_factory=NfoTitle)
    plot: str = ""
    description: str = ""
    actors: list[NfoPerson] = field(default_factory=list)
    directors: list[str] = field(default_factory=list)
    producers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)
    writers: list[str] = field(default_factory=list)
    studios: list[str] = field(default_factory=list)
    year: str = ""
    premiered: str = ""
    release_date: str = ""
    aired: str = ""
    web_url: str = ""
    thumb: str = ""
    show_info: NfoShowInfo = field(default_factory=NfoShowInfo)
