"""Per-indicator prompt templates.

Every AI-calculable indicator has one template: an expert persona, the unit
expected, a short list of reasoning steps, and a few edge rules. The JSON
answer contract and the assumption-list rule are shared by all templates.
"""

from dataclasses import dataclass, field

from itinera.pydantic_models import FieldKey


RESPONSE_CONTRACT = """## Format de réponse

Réponds UNIQUEMENT avec un objet JSON valide :

{
  "applicable": true | false,
  "value": nombre ou "N/A",
  "confidence": "high" | "medium" | "low",
  "reasoning": "Explication détaillée du raisonnement en français",
  "assumptions": ["Liste COMPLÈTE des hypothèses de l'intervention"],
  "calculation_steps": ["Étapes du calcul avec formules"],
  "sources": ["Sources de données"],
  "caveats": ["Limitations ou points d'attention"]
}

Si l'indicateur ne s'applique pas à cette intervention, retourne
"applicable": false et "value": "N/A" avec une explication dans "reasoning".

## Hypothèses

Le champ "assumptions" REMPLACE la liste d'hypothèses de l'intervention.
Retourne toujours la liste COMPLÈTE et MISE À JOUR : les hypothèses
existantes encore valables plus celles que tu ajoutes, jamais seulement
les nouvelles.

## Niveau de confiance

- "high" : données explicites dans la description (produit, dose, matériel)
- "medium" : valeurs courantes supposées pour ce type d'intervention
- "low" : intervention vague, moyenne de catégorie utilisée"""


@dataclass(frozen=True)
class IndicatorPromptTemplate:
    """Prompt pair for one indicator.

    Attributes:
        key: Indicator this template calculates.
        expert: Persona line ("Tu es un expert en ...").
        task: What to estimate, including the unit.
        steps: Reasoning steps listed in the system prompt.
        rules: Edge rules repeated in the user prompt.
    """

    key: FieldKey
    expert: str
    task: str
    steps: tuple[str, ...]
    rules: tuple[str, ...] = field(default_factory=tuple)

    def get_system_prompt(self) -> str:
        steps = "\n".join(f"{i}. {step}" for i, step in enumerate(self.steps, 1))
        return (
            f"Tu es un expert en {self.expert}. Ta tâche est d'estimer {self.task}.\n\n"
            "Tu recevras le contexte du système de culture, de l'étape et de "
            "l'intervention, ainsi que les hypothèses déjà établies aux niveaux "
            "système, étape et intervention.\n\n"
            f"## Étapes de raisonnement\n\n{steps}\n\n"
            f"{RESPONSE_CONTRACT}"
        )

    def get_prompt(self, context_text: str) -> str:
        parts = [
            context_text.strip(),
            f"# Tâche\n\nEstimer {self.task} pour cette intervention.",
        ]
        if self.rules:
            rules = "\n".join(f"- {rule}" for rule in self.rules)
            parts.append(f"**IMPORTANT** :\n{rules}")
        parts.append("Prends en compte les hypothèses des 3 niveaux. "
                     "Réponds en JSON valide comme spécifié dans tes instructions système.")
        return "\n\n".join(parts) + "\n"


INDICATOR_TEMPLATES: dict[FieldKey, IndicatorPromptTemplate] = {
    t.key: t
    for t in [
        IndicatorPromptTemplate(
            key=FieldKey.FREQUENCE,
            expert="itinéraires techniques des grandes cultures françaises",
            task="la **fréquence** de l'intervention (nombre de passages par an, sans unité)",
            steps=(
                "Identifier le type d'opération et la culture",
                "Déterminer si l'intervention est systématique ou occasionnelle",
                "Estimer la fréquence moyenne (1 = chaque année, 0.5 = une année sur deux)",
            ),
            rules=("Une valeur supérieure à 1 signifie plusieurs passages la même année",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.AZOTE_MINERAL,
            expert="fertilisation azotée minérale",
            task="la quantité d'**azote minéral** apportée, en **unités N/ha**",
            steps=(
                "Identifier l'engrais (ammonitrate, solution azotée, urée...)",
                "Estimer la dose de produit apportée (kg/ha ou L/ha)",
                "Convertir en unités d'azote selon la teneur du produit",
            ),
            rules=("Aucun engrais minéral azoté : 0 U/ha", "Le résultat est en unités N/ha"),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.AZOTE_ORGANIQUE,
            expert="fertilisation organique et effluents d'élevage",
            task="la quantité d'**azote organique** apportée, en **unités N/ha**",
            steps=(
                "Identifier le produit organique (fumier, lisier, compost, digestat...)",
                "Estimer la dose apportée (t/ha ou m³/ha)",
                "Appliquer la teneur en azote total du produit",
            ),
            rules=("Aucun apport organique : 0 U/ha",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.RENDEMENT_TMS,
            expert="agronomie et potentiel de rendement des cultures françaises",
            task="le **rendement** de la culture, en **quintaux/ha** (ou t MS/ha pour les fourrages)",
            steps=(
                "Identifier la culture et le mode de conduite (bio ou conventionnel)",
                "Partir du rendement moyen régional de référence",
                "Ajuster selon le sol, le précédent et les hypothèses",
            ),
            rules=("Seule une intervention de récolte porte un rendement",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.IFT,
            expert="protection des cultures et réglementation phytosanitaire française",
            task="l'**IFT** (Indicateur de Fréquence de Traitement) de l'intervention",
            steps=(
                "Identifier le ou les produits phytosanitaires",
                "Estimer la dose appliquée et la dose de référence homologuée",
                "Calculer IFT = dose appliquée / dose de référence",
                "Sommer les IFT en cas de mélange",
            ),
            rules=("Intervention sans produit phytosanitaire : IFT 0", "Arrondir à 1 décimale"),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.EIQ,
            expert="évaluation des risques liés aux produits phytosanitaires",
            task="l'**EIQ** (Environmental Impact Quotient) de terrain de l'intervention",
            steps=(
                "Identifier les matières actives appliquées",
                "Retenir l'EIQ de référence de chaque matière active",
                "Calculer EIQ terrain = EIQ × % matière active × dose",
            ),
            rules=("Intervention sans produit phytosanitaire : EIQ 0",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.GES,
            expert="bilan carbone des exploitations agricoles",
            task="les émissions de **GES** de l'intervention, en **kg éq. CO2/ha**",
            steps=(
                "Estimer les émissions liées au carburant (GNR × facteur d'émission)",
                "Ajouter les émissions liées aux intrants (engrais azotés, N2O)",
                "Sommer les postes d'émission",
            ),
            rules=("Réutilise la valeur de GNR si elle est connue",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.TEMPS_TRAVAIL,
            expert="organisation du travail et débits de chantier agricoles",
            task="le **temps de travail** de l'intervention, en **h/ha**",
            steps=(
                "Identifier l'opération et le matériel",
                "Estimer le débit de chantier (ha/h)",
                "Calculer temps = 1 / débit, plus les temps annexes",
            ),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.COUTS_PHYTOS,
            expert="économie des produits phytosanitaires",
            task="le **coût des produits phytosanitaires**, en **€/ha**",
            steps=(
                "Identifier les produits et leurs doses",
                "Appliquer les prix de marché actuels",
                "Sommer le coût de chaque produit",
            ),
            rules=("Intervention sans produit phytosanitaire : 0 €/ha",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.SEMENCES,
            expert="semences et implantation des cultures",
            task="le **coût des semences**, en **€/ha**",
            steps=(
                "Identifier l'espèce et le type de semence (certifiée, fermière)",
                "Estimer la densité de semis",
                "Calculer coût = dose × prix unitaire",
            ),
            rules=("Seul un semis ou une plantation porte un coût de semences",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.ENGRAIS,
            expert="économie de la fertilisation",
            task="le **coût des engrais**, en **€/ha**",
            steps=(
                "Identifier les engrais et leurs doses",
                "Appliquer les prix de marché actuels",
                "Sommer le coût de chaque produit",
            ),
            rules=("Réutilise les valeurs d'azote minéral et organique si elles sont connues",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.MECANISATION,
            expert="coûts de mécanisation (barème d'entraide)",
            task="le **coût de mécanisation** de l'intervention, en **€/ha**",
            steps=(
                "Identifier le tracteur et l'outil",
                "Appliquer le coût horaire ou à l'hectare du matériel",
                "Inclure l'amortissement et l'entretien, hors carburant",
            ),
            rules=("Opérations manuelles : 0 €/ha",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.GNR,
            expert="machinisme agricole et consommation de carburant",
            task="le **coût du GNR** (Gazole Non Routier) consommé, en **€/ha**",
            steps=(
                "Identifier le type d'opération et son intensité énergétique",
                "Estimer la consommation (L/ha) = consommation horaire × temps/ha",
                "Multiplier par le prix du GNR",
            ),
            rules=("Opérations manuelles ou matériel électrique : 0 €/ha",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.IRRIGATION,
            expert="irrigation des grandes cultures",
            task="le **coût de l'irrigation**, en **€/ha**",
            steps=(
                "Déterminer si la culture est irriguée",
                "Estimer le volume apporté (m³/ha)",
                "Appliquer le coût de l'eau et du pompage",
            ),
            rules=("Culture non irriguée : 0 €/ha",),
        ),
        IndicatorPromptTemplate(
            key=FieldKey.PRIX_VENTE,
            expert="marchés des produits agricoles français",
            task="le **prix de vente** de la récolte, en **€/quintal** (ou €/t)",
            steps=(
                "Identifier le produit vendu et sa filière (bio, conventionnel)",
                "Retenir le prix de marché moyen récent",
                "Ajuster selon la qualité et les débouchés",
            ),
            rules=("Seule une intervention de récolte porte un prix de vente",),
        ),
    ]
}
