"""
Reference extraction from spreadsheet formulas.

Formulas are tokenized with openpyxl's Excel formula tokenizer. Every operand
token of subtype RANGE is a reference: those containing ':' are ranges, the
rest are single cells. Range endpoints are reported as cells as well.
"""
import logging
from typing import List, Optional, Set

from openpyxl.formula.tokenizer import Token, Tokenizer, TokenizerError
from pydantic import BaseModel, Field

# Configure logging
logger = logging.getLogger("formula_extractor")

RANGE_SEPARATOR = ":"


class FormulaReferences(BaseModel):
    """Cells and ranges referenced by a formula, each sorted and duplicate-free."""
    cells: List[str] = Field(default_factory=list)
    ranges: List[str] = Field(default_factory=list)


class MalformedFormulaError(ValueError):
    """Raised internally when a formula tokenizes but cannot be a valid expression."""


def tokenize_formula(formula: str) -> List[Token]:
    """
    Tokenize a formula, adding the leading '=' when it is missing.

    Raises:
        MalformedFormulaError: If brackets are unbalanced or the formula ends
            on an infix operator
    """
    if not formula.startswith("="):
        formula = f"={formula}"

    tokens = Tokenizer(formula).items
    _check_structure(tokens)
    return tokens


def _check_structure(tokens: List[Token]) -> None:
    depth = 0
    for token in tokens:
        if token.type in (Token.FUNC, Token.PAREN, Token.ARRAY):
            depth += 1 if token.subtype == Token.OPEN else -1
            if depth < 0:
                raise MalformedFormulaError("Closing bracket without a matching opener")
    if depth != 0:
        raise MalformedFormulaError("Unclosed bracket")

    significant = [t for t in tokens if t.type != Token.WSPACE]
    if significant and significant[-1].type in (Token.OP_IN, Token.OP_PRE):
        raise MalformedFormulaError(f"Formula ends with operator '{significant[-1].value}'")


def split_range(reference: str) -> List[str]:
    """
    Split 'A1:B5' into its endpoints. A sheet prefix stays on the left one.

    Raises:
        MalformedFormulaError: If either endpoint is empty
    """
    left, _, right = reference.rpartition(RANGE_SEPARATOR)
    if not left or not right:
        raise MalformedFormulaError(f"Range '{reference}' has an empty endpoint")
    return [left, right]


def extract_cells_and_ranges(formula: Optional[str]) -> FormulaReferences:
    """
    Extract the cell and range references from a formula.

    Args:
        formula: A formula such as '=SUM(A1:B2) + C3'; the leading '=' is optional

    Returns:
        FormulaReferences with sorted, unique cells and ranges. Empty for None,
        empty or malformed input.

    Example:
        >>> extract_cells_and_ranges("=SUM(A1:B2) + C3")
        FormulaReferences(cells=['A1', 'B2', 'C3'], ranges=['A1:B2'])
    """
    if not formula:
        return FormulaReferences()

    cells: Set[str] = set()
    ranges: Set[str] = set()
    try:
        for token in tokenize_formula(formula):
            if token.type != Token.OPERAND or token.subtype != Token.RANGE:
                continue
            if RANGE_SEPARATOR in token.value:
                ranges.add(token.value)
                cells.update(split_range(token.value))
            else:
                cells.add(token.value)
    except (TokenizerError, MalformedFormulaError, IndexError, ValueError) as e:
        logger.debug(f"Could not parse formula {formula!r}: {e}")
        return FormulaReferences()

    return FormulaReferences(cells=sorted(cells), ranges=sorted(ranges))
