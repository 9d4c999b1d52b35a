import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select

from funcengine.db.models import AttributeVersionRow, Base, ChangeSetRow, ComponentRow, ResourceRow
from funcengine.db.session import make_engine, make_session_factory
from funcengine.ir.component import Component, ComponentSchema, ComponentSnapshot
from funcengine.ir.errors import ChangeSetNotFoundError, ComponentNotFoundError
from funcengine.ir.results import ResourceStatus, ResourceSyncResult
from funcengine.ir.visibility import HEAD, Visibility
from funcengine.store.base import (
    ChangeSet,
    ChangeSetStatus,
    GraphStore,
    WriteReceipt,
    read_layers,
)

logger = logging.getLogger(__name__)


def _to_change_set(row: ChangeSetRow) -> ChangeSet:
    return ChangeSet(
        workspace_id=row.workspace_id,
        name=row.name,
        id=row.id,
        status=ChangeSetStatus(row.status),
        created_at=row.created_at,
    )


def _to_component(row: ComponentRow) -> Component:
    return Component(schema=ComponentSchema.from_dict(row.schema_doc), name=row.name, id=row.id)


class SqlGraphStore(GraphStore):
    """
    SQLAlchemy-backed store. Same layering rules as the in-memory store;
    attribute versions are insert-only rows.
    """

    def __init__(self, url: Optional[str] = None, engine=None):
        self.engine = engine if engine is not None else (make_engine(url) if url else make_engine())
        self._session_factory = make_session_factory(self.engine)
        self._write_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._lock = threading.RLock()
        Base.metadata.create_all(bind=self.engine)

    # -------------------------------------------------
    # Change sets
    # -------------------------------------------------

    def open_change_set(self, workspace_id: str, name: str = "") -> ChangeSet:
        change_set = ChangeSet(workspace_id=workspace_id, name=name)
        with self._session_factory.begin() as session:
            session.add(ChangeSetRow(
                id=change_set.id,
                workspace_id=workspace_id,
                name=name,
                status=change_set.status.value,
                created_at=change_set.created_at,
            ))
        logger.info("[SqlStore] opened change set %s in %s", change_set.id, workspace_id)
        return change_set

    def get_change_set(self, change_set_id: str) -> ChangeSet:
        with self._session_factory() as session:
            row = session.get(ChangeSetRow, change_set_id)
            if row is None:
                raise ChangeSetNotFoundError(change_set_id)
            return _to_change_set(row)

    def apply_change_set(self, change_set_id: str) -> ChangeSet:
        with self._lock:
            change_set = self.get_change_set(change_set_id)
            self.ensure_writable(Visibility(change_set.workspace_id, change_set_id=change_set_id))

            with self._session_factory.begin() as session:
                session.get(ChangeSetRow, change_set_id).status = ChangeSetStatus.APPLIED.value

                created = session.scalars(
                    select(ComponentRow).where(ComponentRow.change_set_id == change_set_id)
                ).all()
                for row in created:
                    row.change_set_id = HEAD

                rows = session.scalars(
                    select(AttributeVersionRow)
                    .where(AttributeVersionRow.change_set_id == change_set_id)
                    .order_by(AttributeVersionRow.version)
                ).all()
                latest: Dict[Tuple[Optional[str], str, str], AttributeVersionRow] = {}
                for row in rows:
                    latest[(row.system_id, row.component_id, row.attribute)] = row

                for (system_id, component_id, attribute), row in sorted(
                    latest.items(), key=lambda item: (item[0][1], item[0][2], item[0][0] or "")
                ):
                    version = self._next_version(session, component_id, HEAD)
                    session.add(AttributeVersionRow(
                        workspace_id=row.workspace_id,
                        system_id=system_id,
                        change_set_id=HEAD,
                        component_id=component_id,
                        attribute=attribute,
                        version=version,
                        value=row.value,
                        tombstone=row.tombstone,
                    ))
                    # Flush so the next max(version) lookup sees this row.
                    session.flush()

            change_set.status = ChangeSetStatus.APPLIED
        logger.info("[SqlStore] applied change set %s (%d attribute writes, %d components)",
                    change_set_id, len(latest), len(created))
        return change_set

    def abandon_change_set(self, change_set_id: str) -> ChangeSet:
        with self._lock:
            change_set = self.get_change_set(change_set_id)
            self.ensure_writable(Visibility(change_set.workspace_id, change_set_id=change_set_id))
            with self._session_factory.begin() as session:
                session.get(ChangeSetRow, change_set_id).status = ChangeSetStatus.ABANDONED.value
            change_set.status = ChangeSetStatus.ABANDONED
        logger.info("[SqlStore] abandoned change set %s", change_set_id)
        return change_set

    # -------------------------------------------------
    # Components
    # -------------------------------------------------

    def create_component(self, name: str, schema: ComponentSchema, visibility: Visibility,
                         component_id: Optional[str] = None) -> Component:
        component = Component(schema=schema, name=name)
        if component_id:
            component.id = component_id
        with self._lock:
            self.ensure_writable(visibility)
            with self._session_factory.begin() as session:
                session.add(ComponentRow(
                    id=component.id,
                    workspace_id=visibility.workspace_id,
                    change_set_id=visibility.change_set_id,
                    name=name,
                    schema_doc=schema.to_dict(),
                ))
        logger.debug("[SqlStore] created %s '%s' at %s", component.id, name, visibility)
        return component

    def list_components(self, visibility: Visibility) -> List[Component]:
        self.ensure_readable(visibility)
        change_set_ids = sorted({HEAD, visibility.change_set_id})
        with self._session_factory() as session:
            rows = session.scalars(
                select(ComponentRow)
                .where(ComponentRow.workspace_id == visibility.workspace_id)
                .where(ComponentRow.change_set_id.in_(change_set_ids))
            ).all()
            return [_to_component(row) for row in rows]

    def _find_component(self, session, component_id: str, visibility: Visibility) -> Component:
        row = session.get(ComponentRow, component_id)
        if (
            row is None
            or row.workspace_id != visibility.workspace_id
            or row.change_set_id not in (HEAD, visibility.change_set_id)
        ):
            raise ComponentNotFoundError(component_id, visibility)
        return _to_component(row)

    # -------------------------------------------------
    # Attributes
    # -------------------------------------------------

    def read(self, component_id: str, visibility: Visibility) -> ComponentSnapshot:
        self.ensure_readable(visibility)
        layers = read_layers(visibility)
        with self._session_factory() as session:
            component = self._find_component(session, component_id, visibility)
            rows = session.scalars(
                select(AttributeVersionRow)
                .where(AttributeVersionRow.workspace_id == visibility.workspace_id)
                .where(AttributeVersionRow.component_id == component_id)
                .where(AttributeVersionRow.change_set_id.in_(sorted({cs for cs, _ in layers})))
                .order_by(AttributeVersionRow.version)
            ).all()

        by_layer: Dict[Tuple[str, Optional[str]], Dict[str, AttributeVersionRow]] = {}
        for row in rows:
            by_layer.setdefault((row.change_set_id, row.system_id), {})[row.attribute] = row

        defaults = component.schema.defaults
        attributes: Dict[str, Any] = dict(defaults)
        versions: Dict[str, int] = {}
        for layer in layers:
            for attribute, row in by_layer.get(layer, {}).items():
                if row.tombstone:
                    if attribute in defaults:
                        attributes[attribute] = defaults[attribute]
                    else:
                        attributes.pop(attribute, None)
                else:
                    attributes[attribute] = row.value
                versions[attribute] = row.version

        return ComponentSnapshot(
            component_id=component.id,
            name=component.name,
            schema=component.schema,
            attributes=attributes,
            visibility=visibility,
            versions=versions,
        )

    def write(self, component_id: str, attribute: str, value: Any, visibility: Visibility) -> WriteReceipt:
        return self._record(component_id, attribute, value, visibility, tombstone=False)

    def remove_attribute_override(self, component_id: str, attribute: str,
                                  visibility: Visibility) -> WriteReceipt:
        return self._record(component_id, attribute, None, visibility, tombstone=True)

    def _record(self, component_id: str, attribute: str, value: Any,
                visibility: Visibility, tombstone: bool) -> WriteReceipt:
        self.ensure_writable(visibility)
        with self._write_lock(component_id, visibility.change_set_id):
            with self._lock:
                self.ensure_writable(visibility)
                with self._session_factory.begin() as session:
                    self._find_component(session, component_id, visibility)
                    version = self._next_version(session, component_id, visibility.change_set_id)
                    session.add(AttributeVersionRow(
                        workspace_id=visibility.workspace_id,
                        system_id=visibility.system_id,
                        change_set_id=visibility.change_set_id,
                        component_id=component_id,
                        attribute=attribute,
                        version=version,
                        value=value,
                        tombstone=tombstone,
                    ))
        logger.debug("[SqlStore] %s.%s v%d at %s", component_id, attribute, version, visibility)
        return WriteReceipt(component_id=component_id, attribute=attribute,
                            visibility=visibility, version=version)

    @staticmethod
    def _next_version(session, component_id: str, change_set_id: str) -> int:
        current = session.scalar(
            select(func.max(AttributeVersionRow.version))
            .where(AttributeVersionRow.component_id == component_id)
            .where(AttributeVersionRow.change_set_id == change_set_id)
        )
        return (current or 0) + 1

    def _write_lock(self, component_id: str, change_set_id: str) -> threading.Lock:
        with self._lock:
            return self._write_locks.setdefault((component_id, change_set_id), threading.Lock())

    # -------------------------------------------------
    # Resources
    # -------------------------------------------------

    def set_resource(self, component_id: str, visibility: Visibility, result: ResourceSyncResult) -> None:
        visibility.require_workspace()
        with self._session_factory.begin() as session:
            session.merge(ResourceRow(
                workspace_id=visibility.workspace_id,
                component_id=component_id,
                status=result.status.value,
                payload=result.payload,
                message=result.message,
                logs=list(result.logs),
                last_synced=result.last_synced,
            ))

    def get_resource(self, component_id: str, visibility: Visibility) -> Optional[ResourceSyncResult]:
        visibility.require_workspace()
        with self._session_factory() as session:
            row = session.get(ResourceRow, (visibility.workspace_id, component_id))
            if row is None:
                return None
            return ResourceSyncResult(
                status=ResourceStatus(row.status),
                payload=row.payload,
                message=row.message,
                logs=list(row.logs or []),
                last_synced=row.last_synced,
            )
