# answer_engine/schemas/profile.py
from pydantic import BaseModel, Field
from typing import Optional


class ProfileData(BaseModel):
    """
    Demographic profile a user keeps on file.

    The engine never reads these fields; it only forwards the rendered
    string to the answer generator.
    """

    income: Optional[str] = Field(None, description="Annual income bracket")
    occupation: Optional[str] = None
    technology: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    gender: Optional[str] = None
    dob: Optional[str] = Field(None, description="Date of birth")
    maritalStatus: Optional[str] = None
    education: Optional[str] = None
    employment: Optional[str] = None
    ethnicity: Optional[str] = None

    def to_prompt(self) -> str:
        location = ", ".join(p for p in (self.state, self.country) if p)

        lines = [
            ("Annual Income", self.income),
            ("Occupation", self.occupation),
            ("Technology", self.technology),
            ("Location", location),
            ("Gender", self.gender),
            ("Date of Birth", self.dob),
            ("Marital Status", self.maritalStatus),
            ("Education", self.education),
            ("Employment", self.employment),
            ("Ethnicity", self.ethnicity),
        ]

        return "\n".join(
            f"- {label}: {value}" for label, value in lines if value
        )
