"""
Business Rules Configuration
Centralized definitions for input files, planning parameters, and calculation rules.
This file allows rules to be changed in one place without modifying tool code.
"""

from datetime import date, datetime

# ===== PLANNING PARAMETERS =====

PLANNING_RULES = {
    # Number of complete ISO weeks kept as sales history per product
    "weeks_to_analyze": {
        "default": 8,
        "min": 2,
        "max": 20,
    },

    # Number of most recent weeks used for the weekly average
    # (capped per product by its age in weeks)
    "averaging_divisor": {
        "default": 4,
        "min": 1,
        "max": 52,
    },

    "status_labels": {
        "dynamic": "OK",
        "fixed": "Fixed",
    },

    "week_label_template": "Week {iso_week}",
}


# ===== DATE PARSING RULES =====

DATE_PARSING_RULES = {
    # Spreadsheet serial dates count days from this epoch (day 0)
    "excel_epoch": date(1899, 12, 30),

    # Parsed dates outside this window are rejected, never reinterpreted
    "min_year": 1901,
    "max_year": 2999,

    # Two-digit years are assumed to belong to this century
    "two_digit_year_base": 2000,

    # DD/MM/YYYY, DD-MM-YY, D.M.YYYY ... with an optional time part
    "text_pattern": r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2,4})(?:[ T].*)?",
}


# ===== DIAGNOSTIC RULES =====

DIAGNOSTIC_RULES = {
    # Row-level sales diagnostics surfaced to the user; the rest are counted
    "max_row_diagnostics": 20,
    "overflow_template": "... and {count} more rows with errors were skipped.",
}


# ===== INPUT FILE DEFINITIONS =====

DATA_FIELD_DEFINITIONS = {
    "SALES": {
        "file_description": "Sales transaction export, one row per sale line",
        "fields": {
            "ID": {
                "column": "id",
                "description": "Product identifier (SKU). Normalized for grouping",
                "data_type": "string",
                "required": True,
            },
            "Nombre": {
                "column": "name",
                "description": "Product name shown in the results",
                "data_type": "string",
                "required": True,
            },
            "Fecha": {
                "column": "sale_date",
                "description": "Sale date (DD/MM/YYYY, spreadsheet date or serial)",
                "data_type": "date",
                "required": True,
            },
            "Unidades_Vendidas": {
                "column": "units_sold",
                "description": "Units sold on the line",
                "data_type": "numeric",
                "required": True,
            },
            "Semanas_Cobertura_Stock": {
                "column": "coverage_weeks",
                "description": "Weeks of average demand the ideal stock should cover",
                "data_type": "numeric",
                "required": True,
            },
            "Stock_Actual": {
                "column": "current_stock",
                "description": "Units currently in stock",
                "data_type": "numeric",
                "required": True,
            },
        },
    },
    "RULES": {
        "file_description": "Optional per-product overrides, one row per product",
        "fields": {
            "ID": {
                "column": "id",
                "description": "Product identifier matched against the sales file",
                "data_type": "string",
                "required": True,
            },
            "Nombre": {
                "column": "name",
                "description": "Informational product name",
                "data_type": "string",
                "required": False,
            },
            "Stock_Fijo": {
                "column": "fixed_stock",
                "description": "Fixed ideal stock; bypasses the demand formula (0 allowed)",
                "data_type": "numeric",
                "required": False,
                "min_value": 0,
            },
            "Semanas_Cobertura_Stock": {
                "column": "coverage_weeks",
                "description": "Coverage weeks replacing the value from the sales file",
                "data_type": "numeric",
                "required": False,
                "exclusive_min_value": 0,
            },
        },
    },
}

SALES_FILE_RULES = {
    "label": "sales file",
    "required_columns": {
        header: info["column"]
        for header, info in DATA_FIELD_DEFINITIONS["SALES"]["fields"].items()
    },
    "numeric_columns": ["Unidades_Vendidas", "Semanas_Cobertura_Stock", "Stock_Actual"],
    "date_column": "Fecha",
    "id_column": "ID",
}

RULES_FILE_RULES = {
    "label": "rules file",
    "required_columns": {"ID": "id"},
    "optional_columns": {
        header: info["column"]
        for header, info in DATA_FIELD_DEFINITIONS["RULES"]["fields"].items()
        if not info["required"]
    },
}

# Inputs the dynamic formula needs to be finite, by product field
CALCULATION_NUMERIC_FIELDS = {
    "coverage_weeks": "coverage weeks",
    "current_stock": "current stock",
    "averaging_divisor": "averaging divisor",
    "product_age_weeks": "product age in weeks",
}


# ===== CALCULATED FIELDS =====

CALCULATED_FIELDS = {
    "product_age_weeks": {
        "name": "Product Age (weeks)",
        "formula": "ceil((Latest Sale Date - First Sale Date + 1 ms) / 7 days)",
        "description": "Whole weeks between a product's first sale and the latest sale in the file, inclusive",
    },
    "averaging_divisor": {
        "name": "Averaging Divisor",
        "formula": "clamp(Product Age, 1, Averaging Divisor parameter)",
        "description": "Number of most recent weeks used for the average",
        "notes": "New products average over their real age instead of the full window",
    },
    "average_weekly_sales": {
        "name": "Average Weekly Sales",
        "formula": "round(sum(most recent Averaging Divisor weeks) / Averaging Divisor)",
        "description": "Average demand per complete ISO week",
    },
    "ideal_stock": {
        "name": "Ideal Stock",
        "formula": "Fixed Stock if configured, else round(Average Weekly Sales * Coverage Weeks)",
        "description": "Target stock level for the product",
    },
    "units_to_order": {
        "name": "Units to Order",
        "formula": "round(max(0, Ideal Stock - Current Stock))",
        "description": "Suggested replenishment quantity",
        "interpretation": {
            "0": "Stock already covers the target",
            "> 0": "Order this many units",
        },
    },
}


# ===== EXPORT RULES =====

EXPORT_RULES = {
    "summary_sheet": "Summary",
    "results_sheet": "Results",
    "file_name_template": "Replenishment_Results_{run_date}.xlsx",
    # Column label -> results field; week history columns go after current_month_total
    "leading_columns": {
        "ID": "id",
        "Name": "name",
        "Current Month Sales": "current_month_total",
    },
    "trailing_columns": {
        "Avg Weekly Sales": "average_weekly_sales",
        "Coverage Weeks": "coverage_weeks",
        "Current Stock": "current_stock",
        "Ideal Stock": "ideal_stock",
        "Units to Order": "units_to_order",
        "Status": "status",
        "Error": "error",
    },
}


def get_planning_parameters(weeks_to_analyze=None, averaging_divisor=None):
    """
    Resolve the planning parameters, falling back to defaults.

    Args:
        weeks_to_analyze: Number of history weeks (optional)
        averaging_divisor: Number of weeks averaged (optional)

    Returns:
        Tuple of (weeks_to_analyze, averaging_divisor) as ints

    Raises:
        ValueError: If a value is not a whole number inside its allowed range
    """
    resolved = []
    for key, value in (("weeks_to_analyze", weeks_to_analyze),
                       ("averaging_divisor", averaging_divisor)):
        rule = PLANNING_RULES[key]
        if value is None:
            resolved.append(rule["default"])
            continue

        label = key.replace('_', ' ')
        if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
            raise ValueError(f"The {label} must be a whole number, got {value!r}.")
        if not rule["min"] <= value <= rule["max"]:
            raise ValueError(
                f"The {label} must be between {rule['min']} and {rule['max']}, got {int(value)}."
            )
        resolved.append(int(value))

    return tuple(resolved)


def export_business_rules_documentation(output_path="BUSINESS_RULES_DOCUMENTATION.md"):
    """
    Export all business rules to a markdown documentation file.

    Args:
        output_path: Path for the output markdown file
    """
    with open(output_path, 'w') as f:
        f.write("# Business Rules Documentation\n\n")
        f.write("Auto-generated documentation of all business rules and field definitions.\n\n")
        f.write(f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n\n")

        f.write("---\n\n")
        f.write("## Input Files\n\n")

        for file_key, file_info in DATA_FIELD_DEFINITIONS.items():
            f.write(f"### {file_key.title()} File\n\n")
            f.write(f"**Description:** {file_info['file_description']}\n\n")
            f.write("| Column | Data Type | Required | Description |\n")
            f.write("|--------|-----------|----------|-------------|\n")

            for field_name, field_def in file_info['fields'].items():
                f.write(f"| {field_name} | {field_def['data_type']} | "
                        f"{field_def['required']} | {field_def['description']} |\n")
            f.write("\n")

        f.write("---\n\n")
        f.write("## Calculated Fields\n\n")

        for field_info in CALCULATED_FIELDS.values():
            f.write(f"### {field_info['name']}\n\n")
            f.write(f"**Formula:** `{field_info['formula']}`\n\n")
            f.write(f"**Description:** {field_info['description']}\n\n")

            if 'interpretation' in field_info:
                f.write("**Interpretation:**\n\n")
                for range_val, meaning in field_info['interpretation'].items():
                    f.write(f"- {range_val}: {meaning}\n")
                f.write("\n")

            if 'notes' in field_info:
                f.write(f"**Notes:** {field_info['notes']}\n\n")

        f.write("---\n\n")
        f.write("## Business Rule Configurations\n\n")

        f.write("### Planning Rules\n\n")
        f.write(f"```python\n{PLANNING_RULES}\n```\n\n")

        f.write("### Date Parsing Rules\n\n")
        f.write(f"```python\n{DATE_PARSING_RULES}\n```\n\n")

        f.write("### Diagnostic Rules\n\n")
        f.write(f"```python\n{DIAGNOSTIC_RULES}\n```\n\n")


if __name__ == "__main__":
    # Export documentation when run directly
    export_business_rules_documentation()
    print("Business rules documentation exported to BUSINESS_RULES_DOCUMENTATION.md")
