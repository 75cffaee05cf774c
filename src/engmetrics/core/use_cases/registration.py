"""Repository and team registration."""

import re

from engmetrics.core.errors import EnrichmentFailure, ValidationFailure
from engmetrics.core.models import CodeRepository, Team
from engmetrics.core.ports import RepositoryRegistrarPort

AUTO_TEAM_DESCRIPTION = "Auto-created from organization name"

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lower-case, hyphen-separated form of a name (``My Org`` -> ``my-org``)."""
    return _NON_SLUG.sub("-", name.lower()).strip("-")


class RepositoryRegistration:
    """Finds or creates Teams and CodeRepositories for metric enrichment.

    Relies on the registrar's saves being idempotent upserts on team slug
    and repository name; two concurrent registrations converge rather than
    duplicating records.
    """

    def __init__(self, registrar: RepositoryRegistrarPort) -> None:
        self._registrar = registrar

    async def find_or_create_team(self, organization: str) -> Team:
        """Return the team for an organization, creating it on first sight.

        Raises:
            ValidationFailure: If the organization name has no slug.
        """
        slug = slugify(organization)
        if not slug:
            raise ValidationFailure(f"organization {organization!r} has no usable slug")
        team = await self._registrar.find_team_by_slug(slug)
        if team is not None:
            return team
        return await self._registrar.save_team(
            Team(name=organization, slug=slug, description=AUTO_TEAM_DESCRIPTION)
        )

    async def register_repository(
        self,
        name: str,
        url: str | None = None,
        provider: str = "github",
        team_id: int | None = None,
    ) -> CodeRepository:
        """Create or update a repository, keeping an existing team assignment."""
        existing = await self._registrar.find_repository_by_name(name)
        if existing is not None:
            updated = CodeRepository(
                id=existing.id,
                name=name,
                url=url or existing.url,
                provider=provider or existing.provider,
                team_id=existing.team_id if existing.team_id is not None else team_id,
            )
            if updated == existing:
                return existing
            return await self._registrar.save_repository(updated)
        return await self._registrar.save_repository(
            CodeRepository(name=name, url=url, provider=provider, team_id=team_id)
        )

    async def register(
        self, repository: str, organization: str | None, provider: str = "github"
    ) -> CodeRepository:
        """Register a repository under its organization's team.

        Raises:
            EnrichmentFailure: On any registrar error.
        """
        try:
            team_id = None
            if organization:
                team = await self.find_or_create_team(organization)
                team_id = team.id
            return await self.register_repository(
                repository,
                url=f"https://github.com/{repository}" if provider == "github" else None,
                provider=provider,
                team_id=team_id,
            )
        except EnrichmentFailure:
            raise
        except Exception as exc:
            raise EnrichmentFailure(
                f"could not register repository {repository}: {exc}"
            ) from exc
