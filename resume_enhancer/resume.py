"""Structured resume data and its JSON export/import."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ResumeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PersonalInfo(_ResumeModel):
    full_name: str = Field(default="", alias="fullName")
    location: str = ""
    email: str = ""
    phone: str = ""
    linkedin: str = ""
    summary: str = ""


class Skill(_ResumeModel):
    id: str
    name: str = ""
    category: Optional[str] = None


class BulletPoint(_ResumeModel):
    id: str
    text: str = ""


class Experience(_ResumeModel):
    id: str
    company: str = ""
    position: str = ""
    location: str = ""
    start_date: str = Field(default="", alias="startDate")
    end_date: str = Field(default="", alias="endDate")
    bullet_points: List[BulletPoint] = Field(default_factory=list, alias="bulletPoints")


class Education(_ResumeModel):
    id: str
    school: str = ""
    degree: str = ""
    graduation_year: str = Field(default="", alias="graduationYear")


class Project(_ResumeModel):
    id: str
    name: str = ""
    link: str = ""
    description: str = ""


class ResumeData(_ResumeModel):
    personal: PersonalInfo = Field(default_factory=PersonalInfo)
    skills: List[Skill] = Field(default_factory=list)
    experience: List[Experience] = Field(default_factory=list)
    education: List[Education] = Field(default_factory=list)
    projects: List[Project] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        """camelCase dict, the shape suggestions' field paths point into."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_text(self) -> str:
        """Plain-text rendering sent to models alongside the structured data."""
        lines: List[str] = []
        personal = self.personal
        header = " | ".join(part for part in (personal.full_name, personal.location, personal.email, personal.phone, personal.linkedin) if part)
        if header:
            lines.append(header)
        if personal.summary:
            lines.extend(["", "Summary", personal.summary])
        if self.skills:
            lines.extend(["", "Skills", ", ".join(skill.name for skill in self.skills if skill.name)])
        if self.experience:
            lines.extend(["", "Experience"])
            for job in self.experience:
                dates = " - ".join(part for part in (job.start_date, job.end_date) if part)
                lines.append(", ".join(part for part in (job.position, job.company, job.location, dates) if part))
                lines.extend(f"- {bullet.text}" for bullet in job.bullet_points if bullet.text)
        if self.education:
            lines.extend(["", "Education"])
            for school in self.education:
                lines.append(", ".join(part for part in (school.degree, school.school, school.graduation_year) if part))
        if self.projects:
            lines.extend(["", "Projects"])
            for project in self.projects:
                title = f"{project.name} ({project.link})" if project.link else project.name
                lines.append(f"{title}: {project.description}" if project.description else title)
        return "\n".join(lines).strip()


def export_json(resume: ResumeData, indent: Optional[int] = 2) -> str:
    return json.dumps(resume.to_wire(), indent=indent, ensure_ascii=False)


def import_json(payload: str) -> ResumeData:
    """Parse exported resume JSON; raises ``pydantic.ValidationError`` on bad shape."""
    return ResumeData.model_validate_json(payload)
