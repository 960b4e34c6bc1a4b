# SPDX-License-Identifier: Apache-2.0
"""Organization and application directory backed by configuration."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from ..domain.collaborators import ApplicationInfo, IDirectory, OrganizationInfo


class StaticDirectory(IDirectory):
    """
    Directory built from fixed id to name mappings.

    Application names are qualified with their organization name
    (``"acme/app1"``) so that application prefixes fall inside the
    organization's export.
    """

    def __init__(
        self,
        organizations: Optional[Mapping[str, str]] = None,
        applications: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        self._organizations: Dict[str, str] = dict(organizations or {})
        self._applications: Dict[str, ApplicationInfo] = {}
        for application_id, info in (applications or {}).items():
            organization_id = info["organization"]
            name = info["name"]
            if "/" not in name and organization_id in self._organizations:
                name = f"{self._organizations[organization_id]}/{name}"
            self._applications[application_id] = ApplicationInfo(
                application_id=application_id, name=name, organization_id=organization_id
            )

    def get_organization(self, organization_id: str) -> Optional[OrganizationInfo]:
        name = self._organizations.get(organization_id)
        if name is None:
            return None
        applications = [
            app.application_id
            for app in self._applications.values()
            if app.organization_id == organization_id
        ]
        return OrganizationInfo(organization_id=organization_id, name=name, applications=applications)

    def get_application(self, application_id: str) -> Optional[ApplicationInfo]:
        return self._applications.get(application_id)
