"""
Prompt builder for CV analysis.

Composes the single instruction sent to the language model: role preamble,
job context, CV text, required JSON schema and scoring rubric. Pure and
deterministic for a given input.
"""

from cv_analyzer.models import SCORE_BANDS, ExperienceLevel, JobContext

BASE_ROLE = (
    "You are an expert CV analyst and ATS specialist with deep knowledge of hiring "
    "practices across industries. You have 15+ years of experience helping professionals "
    "optimize their resumes for both ATS systems and human recruiters."
)

EXPERIENCE_GUIDANCE = {
    ExperienceLevel.ENTRY: (
        "Focus on potential, education, internships, projects, and transferable skills. "
        "Entry-level candidates should emphasize learning agility and foundational skills."
    ),
    ExperienceLevel.MID: (
        "Evaluate career progression, increasing responsibilities, and developing expertise. "
        "Mid-level professionals should show growth and expanded impact."
    ),
    ExperienceLevel.SENIOR: (
        "Assess leadership experience, strategic thinking, and significant achievements. "
        "Senior professionals should demonstrate team leadership and business impact."
    ),
    ExperienceLevel.EXECUTIVE: (
        "Focus on strategic leadership, organizational impact, and industry influence. "
        "Executive candidates should show transformation and high-level business results."
    ),
}

FIELD_GUIDANCE = {
    "computer science": (
        "Emphasize technical skills, programming languages, frameworks, system design, "
        "and quantifiable technical achievements."
    ),
    "engineering": (
        "Focus on technical expertise, project management, problem-solving, "
        "and measurable engineering outcomes."
    ),
    "business": (
        "Evaluate strategic thinking, financial impact, team leadership, "
        "and business development achievements."
    ),
    "marketing": (
        "Assess campaign performance, brand building, digital marketing skills, "
        "and ROI-driven results."
    ),
    "design": (
        "Focus on portfolio quality, design thinking, user experience, "
        "and creative problem-solving."
    ),
}

DEFAULT_FIELD_GUIDANCE = "Evaluate based on general professional standards."

OUTPUT_SCHEMA = """{
  "overallScore": number (0-100),
  "summary": {
    "strengths": "1-2 sentence summary of the candidate's key strengths",
    "areasOfImprovement": "1-2 sentence summary of the main areas needing improvement"
  },
  "sections": {
    "atsCompatibility": {
      "score": number (0-100),
      "issues": [specific formatting/structure issues],
      "recommendations": [specific ATS optimization suggestions],
      "details": {
        "formatScore": number (0-100),
        "keywordDensity": number (0-100),
        "structureScore": number (0-100),
        "readabilityScore": number (0-100)
      }
    },
    "skillsAlignment": {
      "score": number (0-100),
      "missing": [{"skill": "skill name", "importance": "low|medium|high|critical"}],
      "present": [{"skill": "skill name", "proficiency": "beginner|intermediate|advanced|expert"}],
      "suggestions": [skill improvement recommendations]
    },
    "experienceRelevance": {
      "score": number (0-100),
      "strengths": [experience strengths],
      "weaknesses": [experience gaps],
      "careerProgression": "excellent|good|fair|needs-improvement"
    },
    "achievementQuantification": {
      "score": number (0-100),
      "quantifiedAchievements": [existing quantified achievements],
      "improvements": [{"section": "section name", "suggestion": "specific improvement", "example": "example quantification"}]
    },
    "marketPositioning": {
      "score": number (0-100),
      "competitiveAnalysis": {
        "salaryRange": {"min": number, "max": number, "currency": "USD"},
        "demandLevel": "very-low|low|moderate|high|very-high",
        "competitionLevel": "very-low|low|moderate|high|very-high"
      }
    }
  },
  "recommendations": [
    {
      "priority": "low|medium|high|critical",
      "category": "skills|experience|format|content|keywords|achievements",
      "suggestion": "specific actionable recommendation",
      "impact": "predicted impact description",
      "difficulty": "easy|medium|hard",
      "estimatedTimeToImplement": "immediate|hours|days|weeks"
    }
  ],
  "jobMatching": {
    "overallMatch": number (0-100),
    "skillsMatch": number (0-100),
    "experienceMatch": number (0-100),
    "educationMatch": number (0-100),
    "missingSkills": [skills required by the target role but absent from the CV],
    "bestMatches": [
      {
        "jobIndex": number,
        "compatibilityScore": number (0-100),
        "matchingSkills": [skills],
        "missingSkills": [skills],
        "recommendations": [recommendations]
      }
    ],
    "improvementPotential": "description of realistic improvement potential"
  },
  "marketInsights": {
    "salaryRange": {"min": number, "max": number, "currency": "USD", "confidence": "low|medium|high"},
    "demandLevel": "very-low|low|moderate|high|very-high",
    "competitionLevel": "very-low|low|moderate|high|very-high",
    "growthProjection": "declining|stable|growing|rapidly-growing",
    "keyTrends": [industry trends]
  }
}"""

ANALYSIS_FOCUS = """- Evaluate ATS compatibility (formatting, keywords, structure)
- Assess skill alignment with the target roles (technical and soft skills)
- Analyze experience relevance and career progression
- Identify quantified achievements and suggest where numbers are missing
- Provide market-competitive positioning analysis
- Generate prioritized, actionable recommendations
- Strengths: highlight the 2-3 most compelling aspects of the CV in 1-2 sentences
- Areas of improvement: identify the 2-3 most critical gaps in 1-2 sentences"""


def build_system_prompt(experience_level: ExperienceLevel, major: str) -> str:
    """Role preamble calibrated to career level and field."""
    level_guidance = EXPERIENCE_GUIDANCE.get(experience_level, EXPERIENCE_GUIDANCE[ExperienceLevel.MID])
    field_guidance = FIELD_GUIDANCE.get(major.strip().lower(), DEFAULT_FIELD_GUIDANCE)
    return (
        f"{BASE_ROLE} {level_guidance} {field_guidance} "
        "Always provide specific, actionable feedback with quantifiable recommendations."
    )


def build_job_context(context: JobContext) -> str:
    """Target-job block: one title, several descriptions, or a generic fallback."""
    level = context.experience_level.value

    if context.target_job_title:
        return f"TARGET JOB: {context.target_job_title}\n(General analysis for this job title)"

    if context.target_job_descriptions:
        blocks = []
        for index, job in enumerate(context.target_job_descriptions, start=1):
            requirements = ", ".join(job.requirements) if job.requirements else "Not specified"
            blocks.append(
                f"Job {index}: {job.title} at {job.company or 'Company'}\n"
                f"Description: {job.description or 'Not provided'}\n"
                f"Requirements: {requirements}"
            )
        return "TARGET JOBS:\n" + "\n\n".join(blocks)

    return f"TARGET: General {level}-level position in {context.major}"


def build_scoring_rubric() -> str:
    lines = []
    upper = 100
    for lower, label in SCORE_BANDS:
        if lower == 0:
            lines.append(f"- Below {upper + 1}: {label}")
        else:
            lines.append(f"- {lower}-{upper}: {label}")
        upper = lower - 1
    return "\n".join(lines)


def build_analysis_prompt(cv_text: str, context: JobContext) -> str:
    """
    Compose the full analysis instruction.

    Args:
        cv_text: Cleaned CV text from the extractor
        context: Experience level, field and optional target jobs

    Returns:
        Prompt string for the AI client
    """
    level = context.experience_level.value
    return f"""{build_system_prompt(context.experience_level, context.major)}

Analyze this CV for a {level}-level professional in {context.major}. \
Respond ONLY with valid JSON (no markdown, no code fences).

CV TEXT:
{cv_text}

{build_job_context(context)}

REQUIRED JSON STRUCTURE:
{OUTPUT_SCHEMA}

ANALYSIS FOCUS:
{ANALYSIS_FOCUS}

SCORING RUBRIC (applies to overallScore and every section score):
{build_scoring_rubric()}

Be specific and actionable, and score against industry standards for {level}-level roles in {context.major}.
"""
