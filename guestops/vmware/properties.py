# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/vmware/properties.py
"""
Property retrieval for single managed objects.

Reading ``vm.runtime.host`` through the pyVmomi attribute accessors costs one
round trip per attribute; the property collector fetches any number of paths
of one object in a single call.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from pyVmomi import vmodl

from ..core.logger import get_logger


def moref_str(obj: Any) -> str:
    """``VirtualMachine:vm-42`` style reference for log and error messages."""
    moid = getattr(obj, "_moId", None)
    if moid is None:
        return str(obj)
    return f"{getattr(obj, '_wsdlName', type(obj).__name__)}:{moid}"


def build_filter_spec(obj: Any, paths: Sequence[str]) -> Any:
    pc = vmodl.query.PropertyCollector
    return pc.FilterSpec(
        objectSet=[pc.ObjectSpec(obj=obj, skip=False)],
        propSet=[pc.PropertySpec(type=type(obj), pathSet=list(paths), all=False)],
    )


def retrieve_one(
    property_collector: Any,
    obj: Any,
    paths: Sequence[str],
    *,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """
    Fetch ``paths`` of ``obj`` and return them keyed by property path.

    Unset properties are simply absent from the result. Faults raised by the
    collector (ManagedObjectNotFound, InvalidProperty, ...) propagate.
    """
    log = get_logger(logger)
    contents = property_collector.RetrieveContents([build_filter_spec(obj, paths)])

    props: Dict[str, Any] = {}
    for content in contents or []:
        for dp in getattr(content, "propSet", None) or []:
            props[dp.name] = dp.val
        for missing in getattr(content, "missingSet", None) or []:
            log.debug(
                "Property %s of %s not retrieved: %s",
                missing.path,
                moref_str(obj),
                type(getattr(missing, "fault", None)).__name__,
            )
    return props


def find_by_name(content: Any, vimtype: Any, name: str) -> Any:
    """
    First managed object of ``vimtype`` named ``name`` in the inventory, or None.

    Names are fetched for the whole container in one collector call.
    """
    view = content.viewManager.CreateContainerView(content.rootFolder, [vimtype], True)
    try:
        pc = vmodl.query.PropertyCollector
        trav = pc.TraversalSpec(name="traverseEntities", path="view", skip=False, type=type(view))
        spec = pc.FilterSpec(
            objectSet=[pc.ObjectSpec(obj=view, skip=True, selectSet=[trav])],
            propSet=[pc.PropertySpec(type=vimtype, pathSet=["name"], all=False)],
        )
        for oc in content.propertyCollector.RetrieveContents([spec]) or []:
            for dp in getattr(oc, "propSet", None) or []:
                if dp.name == "name" and dp.val == name:
                    return oc.obj
        return None
    finally:
        view.Destroy()
