"""Starter content for a freshly created instructions file."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .metadata import SemVer, VersionMetadata, inject, utc_now

TEMPLATE_VERSION = SemVer(1, 0, 0)

TEMPLATE_BODY = """\
# Copilot Instructions

## Core Principles
- Use descriptive variable and function names
- Write clear, concise comments for complex logic
- Prioritize readability and maintainability
- Separate concerns (models, views, controllers, etc.)

## Version Control

### Git Workflow
- Always stage (`git add`) and commit all changes when finishing a task
- When committing new changes, increment the project version as appropriate
- Add large files/directories to `.gitignore` to avoid committing unnecessary data

### Commit Message Format
- Use conventional commit format:
  - **New features**: `git commit -m "feat: add new feature"`
  - **Bug fixes**: `git commit -m "fix: fix issue"`
  - **Maintenance**: `git commit -m "chore: update dependencies"`
  - **Documentation**: `git commit -m "docs: update documentation"`

## Code Quality Standards
- Always run linters before committing
- Validate and sanitize all user inputs
- Use parameterized statements to prevent SQL injection
- Provide meaningful error messages

### Naming Conventions
- Python: `snake_case` for variables and functions, `PascalCase` for classes
- JavaScript/TypeScript: `camelCase` for variables and functions, `PascalCase` for classes
- REST endpoints: plural nouns (e.g., `/users`, `/projects`)

## Testing Guidelines
- Write tests alongside new features
- Cover error paths, not only the happy path

## Project-Specific Notes
<!-- Add any project-specific guidelines here -->

## Resources
- [Semantic Versioning](https://semver.org/)
- [Conventional Commits](https://www.conventionalcommits.org/)
"""


def template_content(now: Optional[datetime] = None) -> str:
    """Template text stamped with version 1.0.0 and the given time."""
    metadata = VersionMetadata(version=TEMPLATE_VERSION, last_modified=now or utc_now())
    return inject(TEMPLATE_BODY, metadata)
