"""Turns a validated request into renderable template content."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from ..core.auth import Caller
from ..core.structured_logging import LoggerFactory
from ..models.exceptions import ForbiddenError, NotFoundError, StorageError
from ..models.schemas import RenderRequest, TemplateKind
from .template_store import TemplateStore
from .templates import TemplateSpec, get_template

logger = LoggerFactory.get_logger(__name__)


@dataclass
class ResolvedTemplate:
    spec: TemplateSpec
    fields: Dict[str, str]
    source: str = "builtin"
    template_id: Optional[str] = None

    @property
    def kind(self) -> TemplateKind:
        return self.spec.kind


def kind_for_slug(slug: Optional[str]) -> TemplateKind:
    try:
        return TemplateKind((slug or "").strip().lower())
    except ValueError:
        return TemplateKind.DEFAULT


class TemplateResolver:
    def __init__(self, store: TemplateStore):
        self.store = store

    def resolve_builtin(self, kind: TemplateKind, fields: Dict[str, str]) -> ResolvedTemplate:
        spec = get_template(kind)
        return ResolvedTemplate(spec=spec, fields=spec.prepare(fields))

    async def resolve(self, request: RenderRequest, caller: Caller) -> ResolvedTemplate:
        """Resolve a built-in template name or a stored template id.

        Raises:
            NotFoundError: the stored template does not exist.
            ForbiddenError: a session caller previews another account's template.
            StorageError: the template store could not be read.
        """
        if not request.template_id:
            return self.resolve_builtin(request.template, request.fields)

        template_id = request.template_id
        try:
            record = await self.store.get(template_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError("get", key=f"template:{template_id}") from e

        if record is None:
            raise NotFoundError("Template", template_id)

        # API-key previews are not ownership-checked
        if caller.via_session and caller.account_id != record.account:
            logger.security_event(
                "template_access_denied",
                "Session attempted to preview a template owned by another account",
                template_id=template_id,
                account_id=caller.account_id,
            )
            raise ForbiddenError("Access denied to this template")

        spec = get_template(kind_for_slug(record.slug))
        merged = {**record.defaults, **request.fields}
        return ResolvedTemplate(
            spec=spec,
            fields=spec.prepare(merged),
            source="stored",
            template_id=template_id,
        )
