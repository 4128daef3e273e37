"""
Built-in sample corpus of Swiss law excerpts.

Used by `ingest --mode test` to populate an index without the full PDF, and by
the test suite as realistic fixture text.
"""

from .document_loader import SourceDocument

_SAMPLES = [
    (
        """
Swiss Civil Code (ZGB) - Article 1: Sources of Law

The law governs all matters for which it contains a provision either in its wording or according to its proper meaning.

If no provision can be derived from the law, the judge shall decide according to customary law and, failing that, according to the rule that he would establish as legislator.

In doing so, he shall follow established doctrine and case law.

This article establishes the hierarchy of legal sources in Swiss law, with statutory law taking precedence over customary law and judicial interpretation.
""",
        {"title": "Swiss Civil Code", "page": 1, "section": "General Provisions",
         "source_path": "samples/swiss_civil_code.txt"},
    ),
    (
        """
Swiss Civil Code (ZGB) - Article 8: Legal Capacity

Every person has the legal capacity to have rights and obligations.

Legal capacity begins at birth and ends at death.

Minors and persons under guardianship have limited legal capacity as provided by law.

This fundamental principle ensures that all individuals have the ability to enter into legal relationships under Swiss law.
""",
        {"title": "Swiss Civil Code", "page": 8, "section": "Legal Capacity",
         "source_path": "samples/swiss_civil_code.txt"},
    ),
    (
        """
Swiss Criminal Code (StGB) - Article 1: Principle of Legality

An act may be punished only if the punishment was prescribed by law before the act was committed.

This principle, known as nulla poena sine lege, ensures that criminal liability can only be established on the basis of existing law.

The principle protects individuals from retroactive criminal legislation and ensures legal certainty in criminal matters.
""",
        {"title": "Swiss Criminal Code", "page": 1, "section": "General Provisions",
         "source_path": "samples/swiss_criminal_code.txt"},
    ),
    (
        """
Swiss Employment Law - Termination of Employment

Employment relationships in Switzerland are governed by the Code of Obligations (OR).

Either party may terminate an employment relationship by giving notice in accordance with the statutory notice periods.

The notice period depends on the length of employment and ranges from one month to three months.

Employees have protection against unfair dismissal, and certain categories of employees enjoy enhanced protection.

The Swiss labor courts have jurisdiction over employment disputes and can order reinstatement or compensation.
""",
        {"title": "Swiss Employment Law", "page": 1, "section": "Termination",
         "source_path": "samples/swiss_employment_law.txt"},
    ),
    (
        """
Swiss Family Law - Marriage and Divorce

Marriage in Switzerland is a civil institution regulated by the Civil Code.

The minimum age for marriage is 18 years, and both parties must freely consent to the marriage.

Divorce can be granted on various grounds, including mutual consent, separation, or fault-based grounds.

The court will determine issues of child custody, visitation rights, and financial support in divorce proceedings.

Swiss family law emphasizes the best interests of the child in all custody and support decisions.
""",
        {"title": "Swiss Family Law", "page": 1, "section": "Marriage and Divorce",
         "source_path": "samples/swiss_family_law.txt"},
    ),
]


def sample_documents() -> list[SourceDocument]:
    """Fresh copies of the sample pages."""
    return [SourceDocument(text=text.strip(), metadata=dict(metadata)) for text, metadata in _SAMPLES]
