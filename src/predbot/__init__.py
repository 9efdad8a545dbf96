"""predbot - tradable prediction-market discovery: Gamma metadata reconciled with CLOB tokens and prices."""
