"""Price Wizard pricing committee.

Four LLM personas price one product tier:
  MarketAnalyst  — competitive positioning, monthly price range
  ValueEngineer  — customer ROI, justified price point
  QuantAnalyst   — Van Westendorp simulation, optimal price point
  HeadOfPricing  — synthesis of the three, final price + confidence
"""
