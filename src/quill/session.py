"""One open project: config, record store, reference graph and mutation service.

    with ProjectSession.open("/path/to/novel") as session:
        session.service.add_tag(session.root / "contents", "chapter1.md", "draft")
        session.graph.get_references("contents/chapter1.md")

Everything is explicit; there is no process-wide project state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from quill.config import QuillConfig, load_config
from quill.graph import Interrupt, ReferenceGraph
from quill.mutations import MetadataService
from quill.store import MetaStore

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

logger = logging.getLogger("quill.session")


@dataclass
class ProjectSession:
    config: QuillConfig
    store: MetaStore
    graph: ReferenceGraph = field(default_factory=ReferenceGraph)
    service: MetadataService = field(init=False)

    def __post_init__(self) -> None:
        schemes = self.config.references.external_schemes
        self.graph.external_schemes = tuple(schemes)
        self.service = MetadataService(self.store, self.graph, external_schemes=schemes)

    @property
    def root(self) -> Path:
        return self.config.root

    @classmethod
    def open(
        cls,
        root: Path | str | None = None,
        *,
        interrupt: Interrupt | None = None,
        build_graph: bool = True,
        scan_hyperlinks: bool | None = None,
    ) -> ProjectSession:
        """Load the project containing ``root`` (or cwd) and index its references.

        ``scan_hyperlinks`` overrides ``[references] scan_hyperlinks`` from quill.toml.
        """
        config = load_config(root)
        session = cls(config=config, store=MetaStore(config.root, config.meta_dir))
        if scan_hyperlinks is None:
            scan_hyperlinks = config.references.scan_hyperlinks
        if build_graph and not session.graph.initialize(
            config.root, session.store, interrupt, scan_hyperlinks=scan_hyperlinks,
        ):
            logger.warning("reference graph for %s is incomplete", config.root)
        logger.debug("opened project %s at %s", config.name, config.root)
        return session

    def close(self) -> None:
        self.graph.clear()
        logger.debug("closed project %s", self.config.name)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
