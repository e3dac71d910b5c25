# gradelink/services/tenant/codes.py

"""Human-facing codes handed out by a school: admission numbers, student and teacher codes, grades."""

from gradelink.db.tenant_schema import GRADE_BANDS

# (最低总分, 等级, 评语)，按分数从高到低排列
GRADE_SCALE = [
    (75, "A", "Excellent"),
    (65, "B", "Very Good"),
    (50, "C", "Good"),
    (45, "D", "Fair"),
    (40, "E", "Pass"),
    (0, "F", "Fail"),
]


def school_initials(school_name: str) -> str:
    return "".join(word[0] for word in school_name.split() if word).upper()


def build_admission_number(school_name: str, band: str, year: int, sequence: int) -> str:
    """GVS/PR/2025/001"""
    return f"{school_initials(school_name)}/{GRADE_BANDS[band]}/{year}/{sequence:03d}"


def build_student_code(full_name: str, admission_number: str) -> str:
    """
    First, middle and last initials, the two-digit admission year and the
    school initials: "Ada Obi Eze" + "GVS/PR/2025/001" -> "aoe25.gvs@edu.ng".
    """
    parts = full_name.split()
    first = parts[0][0] if parts else ""
    middle = parts[1][0] if len(parts) > 2 else ""
    last = parts[-1][0] if len(parts) > 1 else ""

    pieces = admission_number.split("/")
    year = pieces[2][-2:] if len(pieces) >= 3 else ""
    prefix = pieces[0] if pieces else ""
    return f"{first}{middle}{last}{year}.{prefix}@edu.ng".lower()


def build_teacher_code(school_name: str, department: str, year: int, sequence: int) -> str:
    """GVS/MAT/2025/001"""
    return f"{school_initials(school_name)[:3]}/{department.strip().upper()[:3]}/{year}/{sequence:03d}"


def grade_for(total: int) -> str:
    for floor, grade, _ in GRADE_SCALE:
        if total >= floor:
            return grade
    return "F"


def remark_for(grade: str) -> str:
    for _, scale_grade, remark in GRADE_SCALE:
        if scale_grade == grade:
            return remark
    return ""


def competition_rank(scores: dict[str, float]) -> dict[str, int]:
    """1, 2, 2, 4 ranking, highest score first."""
    ordered = sorted(scores.values(), reverse=True)
    return {key: ordered.index(score) + 1 for key, score in scores.items()}
