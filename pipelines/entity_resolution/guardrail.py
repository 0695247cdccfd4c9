"""
Quantity Guardrail.

Responsibilities:
- After item resolution, detect charge codes sitting on implausibly large
  quantities and swap them with a co-occurring product line whose small
  quantity looks like the charge.

Non-Responsibilities:
- No lookups; only the resolved codes of one record are rearranged.

Invariant:
Line quantities and descriptions never move. Only resolved codes swap,
and each line takes part in at most one swap.
"""

from typing import List

from poresolve.logger import get_logger
from poresolve.models import ItemResolution

logger = get_logger()


def apply_quantity_guardrail(items: List[ItemResolution], ceiling: int = 10) -> int:
    """
    Swap resolved codes between misassigned charge and product lines.

    A charge line with quantity above the ceiling is paired with the first
    product line whose quantity is within the ceiling and below the
    charge's quantity. Returns the number of swaps.
    """
    swapped = set()
    swaps = 0
    for i, charge in enumerate(items):
        if not charge.is_charge or charge.line.quantity <= ceiling or i in swapped:
            continue
        for j, product in enumerate(items):
            if j == i or j in swapped or product.is_charge:
                continue
            if product.line.quantity > ceiling or product.line.quantity >= charge.line.quantity:
                continue

            charge_code, product_code = charge.final_code, product.final_code
            charge.final_code, product.final_code = product_code, charge_code
            charge.result, product.result = product.result, charge.result
            charge.is_charge, product.is_charge = product.is_charge, charge.is_charge
            charge.notes.append(
                f"quantity_guardrail: {charge_code} on qty {charge.line.quantity:g} swapped with line {j + 1}"
            )
            product.notes.append(
                f"quantity_guardrail: {product_code} on qty {product.line.quantity:g} swapped with line {i + 1}"
            )
            logger.warning(
                "Quantity guardrail swapped codes",
                charge_line=i + 1,
                product_line=j + 1,
                charge_code=charge_code,
                product_code=product_code,
            )
            swapped.update((i, j))
            swaps += 1
            break
    return swaps
