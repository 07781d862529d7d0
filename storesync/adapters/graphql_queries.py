"""GraphQL documents sent to the Shopify Admin API."""

VARIANT_FIELDS = "id sku price inventoryQuantity"

PRODUCTS_QUERY = f"""
query fetchProducts($firstProducts: Int!, $afterProductCursor: String, $firstVariants: Int!) {{
  products(first: $firstProducts, after: $afterProductCursor) {{
    pageInfo {{ hasNextPage endCursor }}
    nodes {{
      id
      title
      totalInventory
      tags
      featuredMedia {{ preview {{ image {{ url }} }} }}
      description
      priceRangeV2 {{ maxVariantPrice {{ amount }} }}
      productType
      status
      vendor
      updatedAt
      variants(first: $firstVariants) {{
        pageInfo {{ hasNextPage endCursor }}
        nodes {{ {VARIANT_FIELDS} }}
      }}
    }}
  }}
}}
"""

VARIANTS_QUERY = f"""
query fetchVariants($productId: ID!, $firstVariants: Int!, $afterVariantCursor: String) {{
  product(id: $productId) {{
    variants(first: $firstVariants, after: $afterVariantCursor) {{
      pageInfo {{ hasNextPage endCursor }}
      nodes {{ {VARIANT_FIELDS} }}
    }}
  }}
}}
"""

SELLING_PLAN_QUERY = """
query getSellingPlan($id: ID!) {
  order(id: $id) {
    lineItems(first: 100) {
      nodes {
        id
        sellingPlan { sellingPlanId name }
      }
    }
  }
}
"""
