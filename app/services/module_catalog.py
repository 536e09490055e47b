"""
Module Catalog — static definition of every business-automation module.

Process-wide, read-only, loaded once at import. Each module declares its
category, estimated time, the modules that must be completed before it
unlocks, and (optionally) its sub-module checkpoints with a ``required``
flag. Only required sub-modules count toward module progress.

ID convention:
    MOD_XYZ      X = category (1-8), YZ = sequence within the category
    SUB_XYZ_N    N = sub-module order within MOD_XYZ

Usage:
    from app.services.module_catalog import get_module, next_modules

    legal = get_module("MOD_201")
    unlocked = next_modules(["MOD_101"])
"""

from dataclasses import dataclass


class ModuleCategory:
    FOUNDATION = "foundation"
    LEGAL = "legal"
    BRANDING = "branding"
    OPERATIONS = "operations"
    MARKETING = "marketing"
    FINANCE = "finance"
    GROWTH = "growth"
    AUTOMATION = "automation"

    ALL = (FOUNDATION, LEGAL, BRANDING, OPERATIONS, MARKETING, FINANCE, GROWTH, AUTOMATION)


@dataclass(frozen=True)
class SubModuleDefinition:
    id: str
    name: str
    display_name: str
    description: str = ""
    order: int = 0
    required: bool = True


@dataclass(frozen=True)
class ModuleDefinition:
    id: str
    name: str
    display_name: str
    description: str
    category: str
    order: int
    estimated_time: str | None = None
    dependencies: tuple[str, ...] = ()
    sub_modules: tuple[SubModuleDefinition, ...] = ()
    output_documents: tuple[str, ...] = ()
    external_integrations: tuple[str, ...] = ()

    @property
    def required_sub_modules(self) -> tuple[SubModuleDefinition, ...]:
        return tuple(sm for sm in self.sub_modules if sm.required)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "category": self.category,
            "order": self.order,
            "estimated_time": self.estimated_time,
            "dependencies": list(self.dependencies),
            "sub_modules": [
                {"id": sm.id, "name": sm.name, "display_name": sm.display_name,
                 "order": sm.order, "required": sm.required}
                for sm in self.sub_modules
            ],
            "output_documents": list(self.output_documents),
            "external_integrations": list(self.external_integrations),
        }


def _sub(id, name, display_name, description, order, required=True):
    return SubModuleDefinition(id, name, display_name, description, order, required)


MODULE_DEFINITIONS: tuple[ModuleDefinition, ...] = (
    # ── Foundation (100) ─────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_101", "business_profile", "Business Profile Setup",
        "Create your comprehensive business profile with AI assistance",
        ModuleCategory.FOUNDATION, 1, "15 min",
        sub_modules=(
            _sub("SUB_101_1", "basic_info", "Basic Information", "Business name, industry, location", 1),
            _sub("SUB_101_2", "business_model", "Business Model", "Revenue streams, target market", 2),
            _sub("SUB_101_3", "team_structure", "Team Structure", "Founders, employees, advisors", 3,
                 required=False),
        ),
    ),
    ModuleDefinition(
        "MOD_102", "vision_mission", "Vision & Mission",
        "Define your business purpose and long-term goals",
        ModuleCategory.FOUNDATION, 2, "20 min", dependencies=("MOD_101",),
    ),
    # ── Legal (200) ──────────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_201", "legal_structure", "Legal Structure Setup",
        "Choose and establish your business legal structure",
        ModuleCategory.LEGAL, 1, "45 min", dependencies=("MOD_101",),
        sub_modules=(
            _sub("SUB_201_1", "structure_selection", "Structure Selection", "LLC, Corp, Partnership analysis", 1),
            _sub("SUB_201_2", "state_registration", "State Registration", "Register in your state", 2),
            _sub("SUB_201_3", "ein_application", "EIN Application", "Federal tax ID number", 3),
        ),
        output_documents=("Articles of Organization", "Operating Agreement", "EIN Confirmation"),
    ),
    ModuleDefinition(
        "MOD_202", "legal_documents", "Legal Documents",
        "Generate essential legal documents for your business",
        ModuleCategory.LEGAL, 2, "1 hour", dependencies=("MOD_201",),
        sub_modules=(
            _sub("SUB_202_1", "terms_conditions", "Terms & Conditions", "Website and service terms", 1),
            _sub("SUB_202_2", "privacy_policy", "Privacy Policy", "Data protection policy", 2),
            _sub("SUB_202_3", "contracts", "Contract Templates", "Client and vendor contracts", 3,
                 required=False),
        ),
    ),
    ModuleDefinition(
        "MOD_203", "compliance", "Compliance & Licensing",
        "Ensure compliance with regulations and obtain necessary licenses",
        ModuleCategory.LEGAL, 3, "2 hours", dependencies=("MOD_201",),
    ),
    # ── Branding (300) ───────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_301", "brand_identity", "Brand Identity",
        "Create your visual identity and brand guidelines",
        ModuleCategory.BRANDING, 1, "1 hour", dependencies=("MOD_102",),
        sub_modules=(
            _sub("SUB_301_1", "logo_design", "Logo Design", "AI-generated logo concepts", 1),
            _sub("SUB_301_2", "color_palette", "Color Palette", "Brand colors and usage", 2),
            _sub("SUB_301_3", "typography", "Typography", "Font selection and hierarchy", 3),
            _sub("SUB_301_4", "brand_voice", "Brand Voice", "Tone and messaging guidelines", 4,
                 required=False),
        ),
    ),
    ModuleDefinition(
        "MOD_302", "marketing_materials", "Marketing Materials",
        "Design business cards, letterheads, and presentations",
        ModuleCategory.BRANDING, 2, "45 min", dependencies=("MOD_301",),
    ),
    # ── Operations (400) ─────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_401", "business_banking", "Business Banking",
        "Set up business banking and financial accounts",
        ModuleCategory.OPERATIONS, 1, "30 min", dependencies=("MOD_201",),
        external_integrations=("Banks", "Credit Unions"),
    ),
    ModuleDefinition(
        "MOD_402", "payment_processing", "Payment Processing",
        "Set up payment acceptance for your business",
        ModuleCategory.OPERATIONS, 2, "45 min", dependencies=("MOD_401",),
        external_integrations=("Stripe", "Square", "PayPal"),
    ),
    ModuleDefinition(
        "MOD_403", "accounting_setup", "Accounting Setup",
        "Initialize bookkeeping and accounting systems",
        ModuleCategory.OPERATIONS, 3, "1 hour", dependencies=("MOD_401",),
        external_integrations=("QuickBooks", "Xero", "FreshBooks"),
    ),
    # ── Marketing (500) ──────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_501", "website_builder", "Website Builder",
        "Create your professional business website",
        ModuleCategory.MARKETING, 1, "2 hours", dependencies=("MOD_301",),
        sub_modules=(
            _sub("SUB_501_1", "domain_setup", "Domain Setup", "Register and configure domain", 1),
            _sub("SUB_501_2", "page_creation", "Page Creation", "Homepage, About, Services", 2),
            _sub("SUB_501_3", "seo_optimization", "SEO Optimization", "Search engine optimization", 3),
        ),
    ),
    ModuleDefinition(
        "MOD_502", "social_media", "Social Media Presence",
        "Establish and optimize social media profiles",
        ModuleCategory.MARKETING, 2, "1 hour", dependencies=("MOD_301",),
    ),
    ModuleDefinition(
        "MOD_503", "email_marketing", "Email Marketing",
        "Set up email marketing and automation",
        ModuleCategory.MARKETING, 3, "45 min", dependencies=("MOD_501",),
        external_integrations=("Mailchimp", "ConvertKit", "SendGrid"),
    ),
    ModuleDefinition(
        "MOD_504", "content_strategy", "Content Strategy",
        "Develop content calendar and marketing strategy",
        ModuleCategory.MARKETING, 4, "1 hour", dependencies=("MOD_502",),
    ),
    # ── Finance (600) ────────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_601", "financial_projections", "Financial Projections",
        "Create revenue forecasts and financial models",
        ModuleCategory.FINANCE, 1, "2 hours", dependencies=("MOD_102", "MOD_403"),
    ),
    ModuleDefinition(
        "MOD_602", "funding_preparation", "Funding Preparation",
        "Prepare for investor meetings and funding rounds",
        ModuleCategory.FINANCE, 2, "3 hours", dependencies=("MOD_601",),
        sub_modules=(
            _sub("SUB_602_1", "pitch_deck", "Pitch Deck", "Investor presentation", 1),
            _sub("SUB_602_2", "financial_statements", "Financial Statements", "P&L, Balance Sheet, Cash Flow", 2),
            _sub("SUB_602_3", "investor_documents", "Investor Documents", "Term sheets, cap table", 3,
                 required=False),
        ),
    ),
    # ── Growth (700) ─────────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_701", "customer_acquisition", "Customer Acquisition",
        "Develop strategies to attract and convert customers",
        ModuleCategory.GROWTH, 1, "1.5 hours", dependencies=("MOD_504",),
    ),
    ModuleDefinition(
        "MOD_702", "analytics_setup", "Analytics & Tracking",
        "Set up business analytics and KPI tracking",
        ModuleCategory.GROWTH, 2, "1 hour", dependencies=("MOD_501",),
        external_integrations=("Google Analytics", "Mixpanel", "Segment"),
    ),
    # ── Automation (800) ─────────────────────────────────────────────────
    ModuleDefinition(
        "MOD_801", "workflow_automation", "Workflow Automation",
        "Automate repetitive business processes",
        ModuleCategory.AUTOMATION, 1, "2 hours", dependencies=("MOD_403", "MOD_503"),
        external_integrations=("Zapier", "Make", "n8n"),
    ),
    ModuleDefinition(
        "MOD_802", "ai_integration", "AI Integration",
        "Integrate AI tools for business efficiency",
        ModuleCategory.AUTOMATION, 2, "1.5 hours", dependencies=("MOD_801",),
    ),
)


class ModuleCatalog:
    """Lookup table over a fixed set of module definitions.

    The default instance wraps MODULE_DEFINITIONS; tests and alternative
    product lines can build their own from any iterable of definitions.
    """

    def __init__(self, definitions=MODULE_DEFINITIONS):
        self._by_id: dict[str, ModuleDefinition] = {}
        for definition in definitions:
            self._by_id[definition.id] = definition

    def __contains__(self, module_id: str) -> bool:
        return module_id in self._by_id

    def __iter__(self):
        return iter(self._by_id.values())

    def __len__(self):
        return len(self._by_id)

    def get(self, module_id: str) -> ModuleDefinition | None:
        return self._by_id.get(module_id)

    def by_category(self, category: str) -> list[ModuleDefinition]:
        return sorted((m for m in self if m.category == category), key=lambda m: m.order)

    def dependencies(self, module_id: str) -> list[ModuleDefinition]:
        """Resolved dependency definitions; unknown ids are skipped."""
        module = self.get(module_id)
        if not module:
            return []
        return [self._by_id[dep] for dep in module.dependencies if dep in self._by_id]

    def dependencies_met(self, module_id: str, completed_ids) -> bool:
        """True iff every declared dependency is in ``completed_ids``."""
        module = self.get(module_id)
        if not module or not module.dependencies:
            return True
        completed = set(completed_ids)
        return all(dep in completed for dep in module.dependencies)

    def next_modules(self, completed_ids) -> list[ModuleDefinition]:
        """Modules not yet completed whose dependencies are all completed."""
        completed = set(completed_ids)
        return [
            m for m in self
            if m.id not in completed and all(dep in completed for dep in m.dependencies)
        ]

    def module_progress(self, module_id: str, completed_sub_ids) -> int:
        """Percentage of required sub-modules completed, rounded to an int.

        Modules without sub-modules report 0 (their progress is driven
        directly through update_progress). A module whose sub-modules are all
        optional is complete as soon as it is checked.
        """
        module = self.get(module_id)
        if not module or not module.sub_modules:
            return 0
        required = module.required_sub_modules
        if not required:
            return 100
        done = set(completed_sub_ids)
        completed_required = sum(1 for sm in required if sm.id in done)
        return _round_half_up(100 * completed_required / len(required))

    def category_progress(self, category: str, completed_ids) -> int:
        modules = self.by_category(category)
        if not modules:
            return 0
        completed = set(completed_ids)
        done = sum(1 for m in modules if m.id in completed)
        return _round_half_up(100 * done / len(modules))


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; progress percentages round .5 up
    return int(value + 0.5)


# Module-level default catalog + convenience wrappers
default_catalog = ModuleCatalog()


def get_module(module_id: str) -> ModuleDefinition | None:
    return default_catalog.get(module_id)


def modules_by_category(category: str) -> list[ModuleDefinition]:
    return default_catalog.by_category(category)


def module_dependencies(module_id: str) -> list[ModuleDefinition]:
    return default_catalog.dependencies(module_id)


def next_modules(completed_ids) -> list[ModuleDefinition]:
    return default_catalog.next_modules(completed_ids)


def module_progress(module_id: str, completed_sub_ids) -> int:
    return default_catalog.module_progress(module_id, completed_sub_ids)


def category_progress(category: str, completed_ids) -> int:
    return default_catalog.category_progress(category, completed_ids)
